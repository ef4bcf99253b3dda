"""Named, cancellable delayed actions for one call."""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, List, Set

logger = logging.getLogger(__name__)

Action = Callable[[], Awaitable[None]]


class Scheduler(ABC):
    """
    Schedules delayed actions against a call's lifecycle.

    Actions are keyed by name; scheduling a name that is already pending
    replaces the earlier action.
    """

    @abstractmethod
    def schedule(self, name: str, delay_seconds: float, action: Action) -> None:
        """Run ``action`` once after ``delay_seconds``."""
        pass

    @abstractmethod
    def cancel(self, name: str) -> bool:
        """Cancel a pending action. Returns True if one was pending."""
        pass

    @abstractmethod
    def cancel_all(self) -> None:
        """Cancel every pending action."""
        pass

    @abstractmethod
    def pending(self) -> List[str]:
        """Names of actions that have not run yet."""
        pass


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running event loop."""

    def __init__(self):
        self._handles: Dict[str, asyncio.TimerHandle] = {}
        self._tasks: Set[asyncio.Task] = set()

    def schedule(self, name: str, delay_seconds: float, action: Action) -> None:
        self.cancel(name)
        loop = asyncio.get_running_loop()
        self._handles[name] = loop.call_later(
            max(0.0, delay_seconds), self._fire, name, action
        )

    def _fire(self, name: str, action: Action) -> None:
        self._handles.pop(name, None)
        task = asyncio.ensure_future(self._run(name, action))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, name: str, action: Action) -> None:
        try:
            await action()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[SCHEDULER] Delayed action '{name}' failed: {type(e).__name__}: {e}", exc_info=True)

    def cancel(self, name: str) -> bool:
        handle = self._handles.pop(name, None)
        if handle is not None:
            handle.cancel()
            return True
        return False

    def cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
        self._tasks.clear()

    def pending(self) -> List[str]:
        return list(self._handles)
