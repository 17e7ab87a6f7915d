"""
Debounce for rapid repeated processing triggers.

Auto-save can fire several times while a user is still typing a note.
NoteDebouncer collapses those into one call: each schedule() for a key
cancels the pending call for that key and starts the delay over.

This sits in front of process_note; the pipeline and rate limiter know
nothing about it.

Usage:
    debouncer = NoteDebouncer()
    debouncer.schedule(note_id, lambda: process_note(context, user_id))
"""
import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

from config.settings import settings

logger = logging.getLogger(__name__)


class NoteDebouncer:
    """Per-key trailing-edge debounce on the running event loop."""

    def __init__(self, delay_seconds: Optional[float] = None):
        self.delay_seconds = delay_seconds if delay_seconds is not None else settings.debounce_seconds
        self._pending: dict[str, asyncio.Task] = {}

    def schedule(self, key: str, callback: Callable[[], Any]) -> asyncio.Task:
        """
        Schedule callback after the delay, replacing any pending call for key.

        The callback may be sync or return an awaitable. Must be called
        from within a running event loop.
        """
        self.cancel(key)
        task = asyncio.get_running_loop().create_task(self._run(key, callback))
        self._pending[key] = task
        return task

    async def _run(self, key: str, callback: Callable[[], Any]) -> Any:
        await asyncio.sleep(self.delay_seconds)

        # Once started, the call is no longer pending and can't be debounced away
        if self._pending.get(key) is asyncio.current_task():
            del self._pending[key]

        result = callback()
        if inspect.isawaitable(result):
            result = await result
        return result

    def cancel(self, key: str) -> bool:
        """Cancel the pending call for key. Returns True if one was pending."""
        task = self._pending.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug(f"Debounced pending call for {key}")
        return True

    def pending(self, key: str) -> bool:
        """Check if a call is pending for key."""
        task = self._pending.get(key)
        return task is not None and not task.done()
