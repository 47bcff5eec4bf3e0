from __future__ import annotations

from typing import Callable, TypeVar

import anyio

from blobstore.core.exceptions import StorageError

T = TypeVar("T")


async def call_store(func: Callable[..., T], *args, timeout: float | None = None) -> T:
    """Run a blocking store call in a worker thread, bounded by ``timeout``.

    On timeout the worker is abandoned. A half-finished insert is never
    visible because each insert commits as a single transaction.
    """
    try:
        with anyio.fail_after(timeout):
            return await anyio.to_thread.run_sync(func, *args, abandon_on_cancel=True)
    except TimeoutError as exc:
        raise StorageError(f"storage call timed out after {timeout} seconds") from exc
