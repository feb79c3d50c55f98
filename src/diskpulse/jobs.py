"""Background scan jobs with cooperative cancellation."""

import asyncio
import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, Generator, Optional

from diskpulse.walker import CancelToken

log = logging.getLogger(__name__)


class ScanJob:
    """
    Handle for one scan running on its own background thread.

    The job owns a CancelToken and passes it to the scan function as
    ``cancel=``; cancelling the job makes the scan return a partial
    result with ``complete=False``. Jobs never wait on each other; walk
    concurrency is bounded inside each scan. Awaitable from asyncio code.

    Example:
        job = ScanJob.start(scan_directory_deep, "/home/me", max_depth=2)
        ...
        job.cancel()
        result = job.result()
    """

    def __init__(self) -> None:
        self.token = CancelToken()
        self._future: Optional[Future] = None

    @classmethod
    def start(cls, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> "ScanJob":
        """Run ``fn(*args, cancel=token, **kwargs)`` on a new thread."""
        job = cls()
        kwargs["cancel"] = job.token
        job._future = Future()
        name = getattr(fn, "__name__", "scan")
        log.debug("Starting job %s", name)
        thread = threading.Thread(
            target=job._run,
            args=(fn, args, kwargs),
            name=f"diskpulse-job-{name}",
            daemon=True,
        )
        thread.start()
        return job

    def _run(self, fn: Callable[..., Any], args: tuple, kwargs: dict) -> None:
        future = self.future
        if not future.set_running_or_notify_cancel():
            return
        try:
            result = fn(*args, **kwargs)
        except BaseException as e:
            # Handed to whoever calls result()
            future.set_exception(e)
        else:
            future.set_result(result)

    @property
    def future(self) -> Future:
        if self._future is None:
            raise RuntimeError("job was never started")
        return self._future

    def cancel(self) -> None:
        """Ask the scan to stop at its next cancellation point."""
        self.token.cancel()

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def done(self) -> bool:
        return self.future.done()

    def result(self, timeout: Optional[float] = None) -> Any:
        """
        Wait for the scan and return its result.

        Raises:
            TimeoutError: if the scan is still running after ``timeout``
            Exception: whatever the scan itself raised
        """
        return self.future.result(timeout)

    def __await__(self) -> Generator[Any, None, Any]:
        return asyncio.wrap_future(self.future).__await__()
