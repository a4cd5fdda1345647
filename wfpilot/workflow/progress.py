"""
Live progress events for workflow runs.
"""
import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..logging_config import get_logger

logger = get_logger("wfpilot.progress")

PHASES = ("plan", "start", "success", "error", "skip", "info", "delay")


@dataclass
class ProgressEvent:
    phase: str
    message: str
    timestamp: float = field(default_factory=time.time)
    project_url: Optional[str] = None
    action: Optional[str] = None
    step_index: Optional[int] = None
    total_steps: Optional[int] = None
    duration_ms: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase,
            "message": self.message,
            "timestamp": self.timestamp,
            "project_url": self.project_url,
            "action": self.action,
            "step_index": self.step_index,
            "total_steps": self.total_steps,
            "duration_ms": self.duration_ms,
            "extra": self.extra,
        }


class ProgressBus:
    """Fan-out of progress events to subscribers, in subscription order."""

    def __init__(self):
        self._subscribers: List[Callable] = []
        self.history: List[ProgressEvent] = []
        self.max_history = 500

    def subscribe(self, callback: Callable):
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable):
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    async def publish(self, phase: str, message: str, **fields) -> ProgressEvent:
        if phase not in PHASES:
            raise ValueError(f"Unknown progress phase: {phase}")
        event = ProgressEvent(phase=phase, message=message, **fields)
        self.history.append(event)
        if len(self.history) > self.max_history:
            self.history = self.history[-self.max_history:]

        for callback in self._subscribers:
            try:
                if asyncio.iscoroutinefunction(callback):
                    await callback(event)
                else:
                    callback(event)
            except Exception as e:
                logger.error(f"Progress subscriber error: {e}")
        return event
