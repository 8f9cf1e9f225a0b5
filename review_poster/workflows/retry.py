"""Posting a single thread with bounded, jittered exponential backoff."""

import random
import re
from typing import Awaitable, Callable, Optional

from review_poster.cancellation import (
    CancellationToken,
    WorkflowCancelledError,
    cancellable_sleep,
)
from review_poster.integrations.base import ReviewClient
from review_poster.models import CommentThread, CreatedThread
from review_poster.utils.logger import get_logger

logger = get_logger(__name__)

NON_RETRYABLE_STATUS_CODES = frozenset({401, 403, 404})
_NON_RETRYABLE_PATTERN = re.compile(r"\b(401|403|404)\b")

SleepFunc = Callable[[float, Optional[CancellationToken]], Awaitable[bool]]


class PostingError(Exception):
    """Raised when a thread could not be posted."""

    def __init__(self, message: str, attempts: int, status_code: Optional[int] = None):
        super().__init__(message)
        self.attempts = attempts
        self.status_code = status_code


class NonRetryablePostingError(PostingError):
    """Authentication, authorization or not-found failure; never retried."""
    pass


class TransientPostingError(PostingError):
    """Failure that persisted through every allowed attempt."""
    pass


def is_retryable(error: Exception) -> bool:
    """Classify a client failure.

    401, 403 and 404 are final, whether carried as a ``status_code``
    attribute or only mentioned in the message. Everything else, including
    429 and 5xx, may be retried.
    """
    status_code = getattr(error, "status_code", None)
    if status_code is not None:
        return status_code not in NON_RETRYABLE_STATUS_CODES
    return _NON_RETRYABLE_PATTERN.search(str(error)) is None


class RetryCoordinator:
    """Posts threads through a review client, retrying transient failures."""

    def __init__(
        self,
        client: ReviewClient,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_jitter: float = 1.0,
        sleep: SleepFunc = cancellable_sleep,
        jitter: Callable[[float, float], float] = random.uniform,
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.client = client
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_jitter = max_jitter
        self._sleep = sleep
        self._jitter = jitter

    def backoff_delay(self, attempt: int, base_delay: Optional[float] = None) -> float:
        """Delay before retrying after the zero-based ``attempt`` failed."""
        base = self.base_delay if base_delay is None else base_delay
        return base * (2 ** attempt) + self._jitter(0, self.max_jitter)

    async def post_with_retry(
        self,
        project: str,
        repository_id: str,
        pull_request_id: int,
        thread: CommentThread,
        cancellation_token: Optional[CancellationToken] = None,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
    ) -> CreatedThread:
        """Create ``thread`` making at most ``max_retries`` attempts.

        Args:
            project: Project name
            repository_id: Repository ID
            pull_request_id: Pull request ID
            thread: Thread to create
            cancellation_token: Cuts backoff waits short
            max_retries: Override of the attempt limit
            base_delay: Override of the base backoff delay (seconds)

        Returns:
            The created thread

        Raises:
            NonRetryablePostingError: On a 401/403/404 failure, after one attempt
            TransientPostingError: When every attempt failed
            WorkflowCancelledError: If cancelled while waiting to retry
        """
        attempts_allowed = self.max_retries if max_retries is None else max_retries
        last_error: Optional[Exception] = None

        for attempt in range(attempts_allowed):
            try:
                return await self.client.create_thread(
                    project, repository_id, pull_request_id, thread
                )
            except Exception as e:
                last_error = e
                status_code = getattr(e, "status_code", None)

                if not is_retryable(e):
                    logger.warning(
                        f"Not retrying thread on {thread.file_path}:{thread.line}: {e}"
                    )
                    raise NonRetryablePostingError(
                        str(e), attempts=attempt + 1, status_code=status_code
                    ) from e

                if attempt == attempts_allowed - 1:
                    break

                delay = self.backoff_delay(attempt, base_delay)
                logger.info(
                    f"Retrying comment thread post attempt {attempt + 1}/{attempts_allowed} "
                    f"after {delay:.2f}s: {e}"
                )
                if not await self._sleep(delay, cancellation_token):
                    raise WorkflowCancelledError(
                        f"Cancelled while retrying thread on {thread.file_path}"
                    ) from e

        raise TransientPostingError(
            str(last_error),
            attempts=attempts_allowed,
            status_code=getattr(last_error, "status_code", None),
        ) from last_error
