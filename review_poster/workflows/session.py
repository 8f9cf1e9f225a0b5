"""Session-level tracking of the single in-flight workflow."""

import time
from dataclasses import dataclass, field
from typing import Optional

from review_poster.cancellation import CancellationToken, CancellationTokenSource, link_tokens
from review_poster.models import FileDiff, ReviewComment, WorkflowOptions, WorkflowResult
from review_poster.utils.logger import get_logger
from review_poster.workflows.orchestrator import PercentCallback, WorkflowOrchestrator

logger = get_logger(__name__)


@dataclass
class ActiveWorkflow:
    """Handle of the workflow currently running in a session."""

    pull_request_id: int
    source: CancellationTokenSource
    started_at: float = field(default_factory=time.monotonic)


class ReviewSession:
    """Owns the "current workflow" of one controlling session.

    Starting a workflow cancels its predecessor without waiting for it and
    replaces the handle.
    """

    def __init__(self, orchestrator: WorkflowOrchestrator):
        self.orchestrator = orchestrator
        self.current: Optional[ActiveWorkflow] = None

    @property
    def is_running(self) -> bool:
        return self.current is not None

    def _replace_current(self, pull_request_id: int) -> ActiveWorkflow:
        previous = self.current
        if previous is not None:
            logger.info(
                f"Cancelling workflow for PR #{previous.pull_request_id} "
                f"to start PR #{pull_request_id}"
            )
            previous.source.cancel()

        handle = ActiveWorkflow(pull_request_id=pull_request_id, source=CancellationTokenSource())
        self.current = handle
        return handle

    def _release(self, handle: ActiveWorkflow) -> None:
        if self.current is handle:
            self.current = None
        handle.source.dispose()

    async def run_workflow(
        self,
        file_diffs: list[FileDiff],
        options: WorkflowOptions,
        cancellation_token: Optional[CancellationToken] = None,
        progress_callback: Optional[PercentCallback] = None,
    ) -> WorkflowResult:
        """Run the full workflow as the session's only active workflow."""
        handle = self._replace_current(options.pull_request_id)
        linked = link_tokens([handle.source.token, cancellation_token])
        try:
            return await self.orchestrator.execute(
                file_diffs,
                options,
                cancellation_token=linked.token,
                progress_callback=progress_callback,
            )
        finally:
            linked.dispose()
            self._release(handle)

    async def post_comments(
        self,
        comments: list[ReviewComment],
        options: WorkflowOptions,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> WorkflowResult:
        """Post reviewed comments as the session's only active workflow."""
        handle = self._replace_current(options.pull_request_id)
        linked = link_tokens([handle.source.token, cancellation_token])
        try:
            return await self.orchestrator.post_comments(comments, options, linked.token)
        finally:
            linked.dispose()
            self._release(handle)

    async def retry_failed_comments(
        self,
        failed_comments: list[ReviewComment],
        options: WorkflowOptions,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> WorkflowResult:
        handle = self._replace_current(options.pull_request_id)
        linked = link_tokens([handle.source.token, cancellation_token])
        try:
            return await self.orchestrator.retry_failed_comments(
                failed_comments, options, linked.token
            )
        finally:
            linked.dispose()
            self._release(handle)

    def cancel_current(self) -> bool:
        """Cancel the running workflow, if any.

        Returns:
            True if a workflow was cancelled
        """
        if self.current is None:
            return False
        logger.info(f"Cancelling workflow for PR #{self.current.pull_request_id}")
        self.current.source.cancel()
        self.current = None
        return True
