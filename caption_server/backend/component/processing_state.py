"""Per-session processing state machine guarding single-flight batches."""

from __future__ import annotations

from enum import Enum

from caption_server.errors import InvalidTransitionError


class ProcessingState(str, Enum):
    IDLE = "idle"
    BATCHING = "batching"
    AWAITING_RESULT = "awaiting_result"


class ProcessingStateMachine:
    """Idle → Batching → AwaitingResult → Idle.

    ``finish`` is accepted from any state so every exit path of a pipeline run
    lands back in ``IDLE``.
    """

    def __init__(self) -> None:
        self._state = ProcessingState.IDLE

    @property
    def state(self) -> ProcessingState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._state is not ProcessingState.IDLE

    def begin_batch(self) -> None:
        self._transition(ProcessingState.IDLE, ProcessingState.BATCHING)

    def await_result(self) -> None:
        self._transition(ProcessingState.BATCHING, ProcessingState.AWAITING_RESULT)

    def finish(self) -> None:
        self._state = ProcessingState.IDLE

    def _transition(self, expected: ProcessingState, target: ProcessingState) -> None:
        if self._state is not expected:
            raise InvalidTransitionError(
                detail=f"cannot move to {target.value} from {self._state.value}"
            )
        self._state = target


__all__ = ["ProcessingState", "ProcessingStateMachine"]
