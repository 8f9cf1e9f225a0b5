"""Batched posting of comment threads to a pull request."""

from typing import Optional
from urllib.parse import quote

from review_poster.cancellation import (
    CancellationToken,
    WorkflowCancelledError,
    cancellable_sleep,
)
from review_poster.integrations.base import ReviewClient
from review_poster.models import (
    BatchPostResult,
    CommentThread,
    PostedThreadInfo,
    Repository,
    ReviewComment,
    WorkflowOptions,
)
from review_poster.utils.logger import get_logger
from review_poster.workflows.grouping import group_comments_into_threads
from review_poster.workflows.retry import RetryCoordinator, SleepFunc

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 5
DEFAULT_INTER_BATCH_DELAY = 1.0


class RepositoryResolutionError(Exception):
    """Raised when the target repository cannot be determined."""
    pass


def build_thread_url(
    organization_url: str,
    project_name: str,
    repository_id: str,
    pull_request_id: int,
    thread_id: int,
) -> str:
    """Browser URL of a pull request thread."""
    pr_url = build_pull_request_url(
        organization_url, project_name, repository_id, pull_request_id
    )
    return f"{pr_url}?_a=overview&_t={thread_id}"


def build_pull_request_url(
    organization_url: str, project_name: str, repository_id: str, pull_request_id: int
) -> str:
    """Browser URL of a pull request."""
    base_url = organization_url.rstrip("/")
    return (
        f"{base_url}/{quote(project_name, safe='')}/_git/{repository_id}"
        f"/pullrequest/{pull_request_id}"
    )


def partition(threads: list[CommentThread], batch_size: int) -> list[list[CommentThread]]:
    """Split threads into consecutive slices of ``batch_size``."""
    if batch_size < 1:
        raise ValueError("Batch size must be at least 1")
    return [threads[i:i + batch_size] for i in range(0, len(threads), batch_size)]


class BatchPoster:
    """Posts threads batch by batch, one thread at a time.

    Cancellation is checked before every batch and every thread. A request
    already sent is allowed to finish; the pause between batches ends early
    on cancellation.
    """

    def __init__(
        self,
        client: ReviewClient,
        retry: Optional[RetryCoordinator] = None,
        inter_batch_delay: float = DEFAULT_INTER_BATCH_DELAY,
        sleep: SleepFunc = cancellable_sleep,
    ):
        self.client = client
        self.retry = retry or RetryCoordinator(client, sleep=sleep)
        self.inter_batch_delay = inter_batch_delay
        self._sleep = sleep

    async def _resolve_repository(self, options: WorkflowOptions) -> Repository:
        try:
            repositories = await self.client.list_repositories(options.project_name)
        except Exception as e:
            raise RepositoryResolutionError(f"Failed to list repositories: {e}") from e

        if not repositories:
            raise RepositoryResolutionError("No repositories found in project")

        wanted = options.repository_name
        if not wanted:
            return repositories[0]

        for repository in repositories:
            if repository.id == wanted or repository.name.lower() == wanted.lower():
                return repository
        raise RepositoryResolutionError(
            f"Repository '{wanted}' not found in project {options.project_name}"
        )

    async def post_batches(
        self,
        comments: list[ReviewComment],
        options: WorkflowOptions,
        batch_size: int = DEFAULT_BATCH_SIZE,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> BatchPostResult:
        """Group comments into threads and post them in batches.

        Args:
            comments: Approved comments to post
            options: Target pull request
            batch_size: Threads per batch
            cancellation_token: Stops work before the next thread or batch

        Returns:
            Aggregated posting outcome
        """
        token = cancellation_token or CancellationToken.NONE
        threads = group_comments_into_threads(comments)
        batches = partition(threads, batch_size)
        result = BatchPostResult(thread_count=len(threads))
        repository: Optional[Repository] = None

        for batch_number, batch in enumerate(batches, start=1):
            if token.is_cancellation_requested:
                result.cancelled = True
                break

            result.batch_count += 1
            logger.info(
                f"Processing batch {batch_number}/{len(batches)} with {len(batch)} threads"
            )

            if repository is None:
                try:
                    repository = await self._resolve_repository(options)
                except RepositoryResolutionError as e:
                    logger.error(str(e))
                    for thread in batch:
                        self._record_failure(result, thread, str(e))
                    if not await self._pause_between(batch_number, len(batches), token):
                        result.cancelled = True
                        break
                    continue

            cancelled = await self._post_batch(batch, repository, options, token, result)
            if cancelled:
                result.cancelled = True
                break

            if not await self._pause_between(batch_number, len(batches), token):
                result.cancelled = True
                break

        logger.info(
            f"Posted {result.success_count}/{result.thread_count} comment threads "
            f"in {result.batch_count} batch(es)"
            + (" before cancellation" if result.cancelled else "")
        )
        return result

    async def _pause_between(
        self, batch_number: int, total_batches: int, token: CancellationToken
    ) -> bool:
        """Rate-limit pause after every batch but the last; False if cancelled."""
        if batch_number >= total_batches:
            return True
        return await self._sleep(self.inter_batch_delay, token)

    async def _post_batch(
        self,
        batch: list[CommentThread],
        repository: Repository,
        options: WorkflowOptions,
        token: CancellationToken,
        result: BatchPostResult,
    ) -> bool:
        """Post one batch sequentially. Returns True if cancellation stopped it."""
        for thread in batch:
            if token.is_cancellation_requested:
                return True

            try:
                created = await self.retry.post_with_retry(
                    options.project_name,
                    repository.id,
                    options.pull_request_id,
                    thread,
                    cancellation_token=token,
                )
            except WorkflowCancelledError:
                return True
            except Exception as e:
                self._record_failure(result, thread, str(e))
                continue

            result.success_count += 1
            result.posted_threads.append(
                PostedThreadInfo(
                    thread_id=created.id,
                    repository_id=repository.id,
                    file_name=thread.file_path,
                    line_number=thread.line,
                    remote_url=build_thread_url(
                        options.organization_url,
                        options.project_name,
                        repository.id,
                        options.pull_request_id,
                        created.id,
                    ),
                    comments_count=len(thread.comments),
                )
            )

        return False

    @staticmethod
    def _record_failure(result: BatchPostResult, thread: CommentThread, reason: str) -> None:
        logger.warning(f"Failed to post comment for {thread.file_path}: {reason}")
        result.errors.append(f"Failed to post comment for {thread.file_path}: {reason}")
        result.failed_comments.extend(thread.source_comments)
