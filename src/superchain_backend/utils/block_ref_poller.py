"""
Polling utility for block reference changes.

"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class BlockRefPoller(Generic[T]):
    """
    Utility for polling a block reference (e.g. the finalized head) at a
    fixed interval and handing every fetched value to a callback.

    """

    def __init__(self, fetch: Callable[[], Awaitable[T]], name: str = "block ref"):
        """
        Initialize the poller.

        Args:
            fetch: Async function returning the current reference
            name: Label used in log messages and status
        """
        self.fetch = fetch
        self.name = name

        # State tracking
        self.last_ref: Optional[T] = None
        self.polls_succeeded = 0
        self.polls_failed = 0
        self.is_running = False
        self._task: Optional[asyncio.Task] = None

        # Setup logging
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def poll_once(self, callback: Callable[[T], Any], timeout: float) -> bool:
        """
        Fetch the reference once, bounded by timeout, and pass it to callback.

        Args:
            callback: Function (sync or async) receiving the fetched reference
            timeout: Maximum seconds to wait for the fetch

        Returns:
            True if the fetch succeeded and the callback was invoked
        """
        try:
            ref = await asyncio.wait_for(self.fetch(), timeout=timeout)
        except asyncio.TimeoutError:
            self.polls_failed += 1
            self.logger.warning(f"Timed out polling {self.name} after {timeout} seconds")
            return False
        except Exception as e:
            self.polls_failed += 1
            self.logger.warning(f"Failed to poll {self.name}: {e}")
            return False

        self.polls_succeeded += 1
        self.last_ref = ref
        result = callback(ref)
        if inspect.isawaitable(result):
            await result
        return True

    async def _run(self, callback: Callable[[T], Any], interval: float, timeout: float) -> None:
        """Main polling loop."""
        try:
            while self.is_running:
                await asyncio.sleep(interval)
                try:
                    await self.poll_once(callback, timeout)
                except Exception as e:
                    self.logger.error(f"Error handling polled {self.name}: {e}", exc_info=True)
        except asyncio.CancelledError:
            self.logger.info(f"Polling of {self.name} cancelled")
            raise
        finally:
            self.is_running = False

    def start(self, callback: Callable[[T], Any], interval: float, timeout: float) -> Optional[asyncio.Task]:
        """
        Start polling in a background task.

        The first fetch happens one interval after start. A non-positive
        interval disables polling entirely.

        Args:
            callback: Function (sync or async) called with each fetched reference
            interval: Seconds between polls
            timeout: Maximum seconds for each individual fetch

        Returns:
            The background task, or None if polling is disabled or already running
        """
        if self.is_running:
            self.logger.warning(f"Polling of {self.name} already running")
            return None

        if interval <= 0:
            self.logger.info(f"Polling of {self.name} disabled (interval={interval})")
            return None

        self.is_running = True
        self.logger.info(
            f"Starting polling of {self.name} every {interval} seconds "
            f"(timeout {timeout} seconds)"
        )
        self._task = asyncio.create_task(self._run(callback, interval, timeout))
        return self._task

    async def stop(self) -> None:
        """Stop the polling loop and wait for the task to finish."""
        self.logger.info(f"Stopping polling of {self.name}")
        self.is_running = False

        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass  # Expected when cancelling
        self._task = None

    def get_status(self) -> Dict[str, Any]:
        """
        Get current status of the poller.

        Returns:
            Dictionary with status information
        """
        return {
            "is_running": self.is_running,
            "name": self.name,
            "last_ref": self.last_ref,
            "polls_succeeded": self.polls_succeeded,
            "polls_failed": self.polls_failed,
        }
