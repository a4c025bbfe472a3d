import pytest

from caption_server.backend.component.processing_state import (
    ProcessingState,
    ProcessingStateMachine,
)
from caption_server.errors import ErrorCode, InvalidTransitionError


def test_happy_path_cycles_back_to_idle():
    """Test Idle -> Batching -> AwaitingResult -> Idle."""
    machine = ProcessingStateMachine()
    assert machine.state is ProcessingState.IDLE
    assert not machine.is_busy

    machine.begin_batch()
    assert machine.state is ProcessingState.BATCHING
    assert machine.is_busy

    machine.await_result()
    assert machine.state is ProcessingState.AWAITING_RESULT

    machine.finish()
    assert machine.state is ProcessingState.IDLE


def test_second_batch_cannot_begin_while_busy():
    """Test single-flight is enforced by the state machine."""
    machine = ProcessingStateMachine()
    machine.begin_batch()
    with pytest.raises(InvalidTransitionError) as excinfo:
        machine.begin_batch()
    assert excinfo.value.code == ErrorCode.INVALID_TRANSITION
    assert machine.state is ProcessingState.BATCHING


def test_await_result_requires_batching():
    """Test await_result from idle is rejected."""
    machine = ProcessingStateMachine()
    with pytest.raises(InvalidTransitionError):
        machine.await_result()


@pytest.mark.parametrize("steps", [0, 1, 2])
def test_finish_is_accepted_from_any_state(steps):
    """Test every exit path can return the machine to idle."""
    machine = ProcessingStateMachine()
    if steps >= 1:
        machine.begin_batch()
    if steps >= 2:
        machine.await_result()
    machine.finish()
    assert machine.state is ProcessingState.IDLE
