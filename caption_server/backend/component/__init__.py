"""Component layer helpers for the caption server."""

from .buffer_scheduler import BufferLimits, BufferSchedulerHooks, SessionBufferScheduler
from .lifecycle import CleanupReason, LifecycleHooks, SessionLifecycleManager
from .processing_state import ProcessingState, ProcessingStateMachine
from .scheduled_task import (
    AsyncioTaskScheduler,
    ManualTaskScheduler,
    ScheduledTask,
    TaskScheduler,
)

__all__ = [
    "AsyncioTaskScheduler",
    "BufferLimits",
    "BufferSchedulerHooks",
    "CleanupReason",
    "LifecycleHooks",
    "ManualTaskScheduler",
    "ProcessingState",
    "ProcessingStateMachine",
    "ScheduledTask",
    "SessionBufferScheduler",
    "SessionLifecycleManager",
    "TaskScheduler",
]
