"""Cooperative cancellation for review-poster workflows.

A ``CancellationTokenSource`` owns a ``CancellationToken`` which is passed
explicitly down the call chain. Workers poll ``is_cancellation_requested`` at
their checkpoints, register callbacks, or wait with ``cancellable_sleep`` so
that a cancellation during a backoff or rate-limit pause takes effect
immediately.

Callbacks run synchronously on the thread that calls ``cancel()``; cancel
from the event loop thread.
"""

import asyncio
from typing import Callable, Iterable, Optional

from review_poster.utils.logger import get_logger

logger = get_logger(__name__)


class WorkflowCancelledError(Exception):
    """Raised when a workflow stops because its cancellation token fired."""

    def __init__(self, message: str = "Operation was cancelled"):
        super().__init__(message)


class CancellationRegistration:
    """Handle returned by ``CancellationToken.register``."""

    def __init__(self, token: Optional["CancellationToken"], callback: Optional[Callable[[], None]]):
        self._token = token
        self._callback = callback

    def dispose(self) -> None:
        """Stop listening. Safe to call more than once."""
        if self._token is not None and self._callback is not None:
            self._token._unregister(self._callback)
        self._token = None
        self._callback = None


class CancellationToken:
    """Read-only view of a cancellation source."""

    NONE: "CancellationToken"

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []

    @property
    def is_cancellation_requested(self) -> bool:
        """Whether the owning source has been cancelled."""
        return self._cancelled

    def register(self, callback: Callable[[], None]) -> CancellationRegistration:
        """Run ``callback`` once when the token is cancelled.

        Runs the callback immediately when the token is already cancelled.
        """
        if self._cancelled:
            callback()
            return CancellationRegistration(None, None)
        self._callbacks.append(callback)
        return CancellationRegistration(self, callback)

    def raise_if_cancelled(self) -> None:
        """Raise WorkflowCancelledError if cancellation was requested."""
        if self._cancelled:
            raise WorkflowCancelledError()

    def _unregister(self, callback: Callable[[], None]) -> None:
        try:
            self._callbacks.remove(callback)
        except ValueError:
            pass

    def _trigger(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Cancellation callback failed: {e}")


class _NeverCancelledToken(CancellationToken):
    """Token with no source; it can never be triggered."""

    def register(self, callback: Callable[[], None]) -> CancellationRegistration:
        return CancellationRegistration(None, None)

    def _trigger(self) -> None:
        raise RuntimeError("CancellationToken.NONE cannot be cancelled")


CancellationToken.NONE = _NeverCancelledToken()


class CancellationTokenSource:
    """Owner of a cancellation token."""

    def __init__(self) -> None:
        self._token = CancellationToken()
        self._links: list[CancellationRegistration] = []

    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def is_cancellation_requested(self) -> bool:
        return self._token.is_cancellation_requested

    def cancel(self) -> None:
        """Trigger the token. Later calls are no-ops."""
        self._token._trigger()

    def link(self, registration: CancellationRegistration) -> None:
        """Keep a parent registration alive until ``dispose()``."""
        self._links.append(registration)

    def dispose(self) -> None:
        """Detach from every linked parent token."""
        for registration in self._links:
            registration.dispose()
        self._links = []


def link_tokens(tokens: Iterable[Optional[CancellationToken]]) -> CancellationTokenSource:
    """Create a source that is cancelled as soon as any of ``tokens`` is.

    The caller owns the returned source and must ``dispose()`` it once the
    work it guards is done, which detaches it from the parent tokens.
    """
    source = CancellationTokenSource()
    for token in tokens:
        if token is None:
            continue
        if token.is_cancellation_requested:
            source.cancel()
            break
        source.link(token.register(source.cancel))
    return source


def combine_tokens(tokens: Iterable[Optional[CancellationToken]]) -> CancellationToken:
    """Merge several cancellation tokens into one.

    Zero tokens give ``CancellationToken.NONE`` and a single token is returned
    unchanged. Otherwise the result is cancelled as soon as any input is, and
    immediately when an input was already cancelled.
    The merged token stays registered on its inputs; use ``link_tokens`` when
    the inputs outlive the work.

    Args:
        tokens: Tokens to merge; ``None`` entries are ignored

    Returns:
        Combined token
    """
    valid = [token for token in tokens if token is not None]

    if not valid:
        return CancellationToken.NONE
    if len(valid) == 1:
        return valid[0]

    return link_tokens(valid).token


async def cancellable_sleep(delay: float, token: Optional[CancellationToken] = None) -> bool:
    """Sleep for ``delay`` seconds unless the token fires first.

    Args:
        delay: Seconds to wait
        token: Token that cuts the wait short

    Returns:
        True if the full delay elapsed, False if cancellation ended it
    """
    if token is None or token is CancellationToken.NONE:
        await asyncio.sleep(delay)
        return True
    if token.is_cancellation_requested:
        return False

    loop = asyncio.get_running_loop()
    woken = loop.create_future()

    def wake() -> None:
        if not woken.done():
            woken.set_result(None)

    registration = token.register(wake)
    try:
        await asyncio.wait_for(woken, timeout=delay)
    except asyncio.TimeoutError:
        pass
    finally:
        registration.dispose()

    return not token.is_cancellation_requested
