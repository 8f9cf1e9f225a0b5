"""
Comment posting workflow orchestration.

Runs one pull request through the linear phases:
- validating: required options, stored configuration, model availability
- analyzing: external analysis engine turns diffs into draft comments
- previewing: user approval (or auto-approval when preview is skipped)
- posting: batched, retrying thread creation
- summarizing: structured result and human-readable summary

Nothing escapes ``execute``; every outcome is a ``WorkflowResult``.
"""

import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from review_poster.cancellation import (
    CancellationToken,
    CancellationTokenSource,
    WorkflowCancelledError,
    cancellable_sleep,
    link_tokens,
)
from review_poster.integrations.base import (
    AnalysisEngine,
    ConfigValidator,
    ModelAvailability,
    PreviewGate,
    ReviewClient,
)
from review_poster.models import (
    AnalysisProgress,
    AnalysisResult,
    FileDiff,
    PostingConfig,
    PreviewAction,
    PreviewResult,
    ReviewComment,
    WorkflowOptions,
    WorkflowPhase,
    WorkflowResult,
)
from review_poster.utils.logger import get_logger
from review_poster.workflows.batch import BatchPoster
from review_poster.workflows.retry import RetryCoordinator, SleepFunc
from review_poster.workflows.summary import (
    aggregate_workflow_result,
    batch_post_result,
    cancelled_by_user_result,
    cancelled_result,
    no_approvals_result,
    no_changes_result,
    no_comments_result,
    phase_failure_result,
    validation_failure_result,
)

logger = get_logger(__name__)

PercentCallback = Callable[[int, str], None]


class WorkflowValidationError(Exception):
    """Missing or invalid workflow input; raised before any network call."""
    pass


@dataclass
class WorkflowRun:
    """State of one ``execute`` call."""

    pull_request_id: int
    started_at: float = field(default_factory=time.monotonic)
    phase: WorkflowPhase = WorkflowPhase.VALIDATING

    def enter(self, phase: WorkflowPhase) -> None:
        logger.debug(f"PR #{self.pull_request_id}: {self.phase.value} -> {phase.value}")
        self.phase = phase

    @property
    def elapsed_seconds(self) -> int:
        return round(time.monotonic() - self.started_at)


class WorkflowOrchestrator:
    """Drives analysis, preview and posting for a pull request."""

    def __init__(
        self,
        review_client: ReviewClient,
        analysis_engine: Optional[AnalysisEngine] = None,
        preview_gate: Optional[PreviewGate] = None,
        config_validator: Optional[ConfigValidator] = None,
        model_availability: Optional[ModelAvailability] = None,
        posting_config: Optional[PostingConfig] = None,
        sleep: SleepFunc = cancellable_sleep,
    ):
        self.analysis_engine = analysis_engine
        self.preview_gate = preview_gate
        self.config_validator = config_validator
        self.model_availability = model_availability
        self.posting_config = posting_config or PostingConfig()

        retry = RetryCoordinator(
            review_client,
            max_retries=self.posting_config.max_retries,
            base_delay=self.posting_config.base_delay,
            max_jitter=self.posting_config.max_jitter,
            sleep=sleep,
        )
        self.poster = BatchPoster(
            review_client,
            retry=retry,
            inter_batch_delay=self.posting_config.inter_batch_delay,
            sleep=sleep,
        )
        self._shutdown = CancellationTokenSource()

    def dispose(self) -> None:
        """Cancel every run still in flight."""
        self._shutdown.cancel()

    async def execute(
        self,
        file_diffs: list[FileDiff],
        options: WorkflowOptions,
        cancellation_token: Optional[CancellationToken] = None,
        progress_callback: Optional[PercentCallback] = None,
    ) -> WorkflowResult:
        """Execute the complete analyse, preview and post workflow.

        Args:
            file_diffs: Changed files of the pull request
            options: Target pull request and behaviour switches
            cancellation_token: Caller's cancellation token
            progress_callback: Receives (percentage, message) during analysis

        Returns:
            WorkflowResult describing the outcome
        """
        run = WorkflowRun(pull_request_id=options.pull_request_id)
        logger.info(f"Starting comment workflow for PR #{options.pull_request_id}")

        try:
            await self._validate(options)
        except Exception as e:
            logger.error(f"Workflow validation failed: {e}")
            return validation_failure_result(str(e))

        if not file_diffs:
            return no_changes_result()

        linked = link_tokens([cancellation_token, self._shutdown.token])
        token = linked.token

        try:
            run.enter(WorkflowPhase.ANALYZING)
            token.raise_if_cancelled()
            analysis = await self._analyze(file_diffs, token, progress_callback)
            token.raise_if_cancelled()

            if not analysis.comments:
                logger.info("Analysis produced no comments")
                return no_comments_result(analysis)

            run.enter(WorkflowPhase.PREVIEWING)
            preview = await self._preview(analysis.comments, options.skip_preview)
            if preview.action == PreviewAction.CANCEL:
                logger.info("Review cancelled by user")
                return cancelled_by_user_result()

            approved = [c for c in preview.comments if c.is_approved]
            if not approved:
                return no_approvals_result()
            token.raise_if_cancelled()

            run.enter(WorkflowPhase.POSTING)
            posting = await self.poster.post_batches(
                approved,
                options,
                batch_size=options.batch_size or self.posting_config.batch_size,
                cancellation_token=token,
            )

            run.enter(WorkflowPhase.SUMMARIZING)
            result = aggregate_workflow_result(analysis, preview, posting, run.elapsed_seconds)

        except WorkflowCancelledError:
            logger.warning(f"Workflow cancelled during {run.phase.value}")
            phase = run.phase
            run.enter(WorkflowPhase.FAILED)
            return cancelled_result(phase, run.elapsed_seconds)
        except Exception as e:
            logger.exception(f"Workflow failed during {run.phase.value}: {e}")
            phase = run.phase
            run.enter(WorkflowPhase.FAILED)
            return phase_failure_result(phase, str(e) or type(e).__name__, run.elapsed_seconds)
        finally:
            linked.dispose()

        run.enter(WorkflowPhase.SUCCEEDED if result.success else WorkflowPhase.FAILED)
        logger.info(
            f"Workflow finished for PR #{options.pull_request_id}: "
            f"{result.posted_comments} thread(s) posted, {len(result.errors)} error(s)"
        )
        return result

    async def _validate(self, options: WorkflowOptions) -> None:
        if not options.pull_request_id or options.pull_request_id <= 0:
            raise WorkflowValidationError("Valid pull request ID is required")
        if not options.organization_url:
            raise WorkflowValidationError("Organization URL is required")
        if not options.project_name:
            raise WorkflowValidationError("Project name is required")

        if self.analysis_engine is None:
            raise WorkflowValidationError("No analysis engine is configured")

        if self.config_validator is not None:
            validation = self.config_validator.validate()
            if not validation.is_valid:
                raise WorkflowValidationError(
                    f"Configuration validation failed: {validation.error}"
                )

        if self.model_availability is not None and not await self.model_availability.check():
            raise WorkflowValidationError("No language models are available")

    async def _analyze(
        self,
        file_diffs: list[FileDiff],
        token: CancellationToken,
        progress_callback: Optional[PercentCallback],
    ) -> AnalysisResult:
        def on_progress(progress: AnalysisProgress) -> None:
            message = f"{progress.current_file_name} ({progress.completed}/{progress.total})"
            logger.debug(f"Analysis progress {progress.percentage}%: {message}")
            if progress_callback:
                progress_callback(progress.percentage, message)

        result = await self.analysis_engine.analyze(file_diffs, on_progress, token)
        logger.info(
            f"Analyzed {result.summary.analyzed_files}/{result.summary.total_files} files, "
            f"{len(result.comments)} comments, {len(result.errors)} errors"
        )
        return result

    async def _preview(self, comments: list[ReviewComment], skip_preview: bool) -> PreviewResult:
        if skip_preview:
            approved = [c.model_copy(update={"is_approved": True}) for c in comments]
            return PreviewResult(
                action=PreviewAction.POST, comments=approved, approved_count=len(approved)
            )
        if self.preview_gate is None:
            raise RuntimeError("No preview gate is configured")
        return await self.preview_gate.review(comments)

    async def post_comments(
        self,
        comments: list[ReviewComment],
        options: WorkflowOptions,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> WorkflowResult:
        """Post already-reviewed comments without analysis or preview."""
        if not comments:
            return WorkflowResult(success=True, summary="No comments to post")

        linked = link_tokens([cancellation_token, self._shutdown.token])
        try:
            posting = await self.poster.post_batches(
                comments,
                options,
                batch_size=options.batch_size or self.posting_config.batch_size,
                cancellation_token=linked.token,
            )
        except Exception as e:
            logger.exception(f"Batch posting failed: {e}")
            return WorkflowResult(
                success=False, errors=[str(e)], summary=f"Batch posting failed: {e}"
            )
        finally:
            linked.dispose()

        summary = (
            f"Batch posting completed: {posting.success_count}/{posting.thread_count} "
            "comment threads posted successfully"
        )
        if posting.cancelled:
            summary += " (cancelled)"
        return batch_post_result(posting, summary)

    async def retry_failed_comments(
        self,
        failed_comments: list[ReviewComment],
        options: WorkflowOptions,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> WorkflowResult:
        """Post comments that failed in an earlier run."""
        if not failed_comments:
            return WorkflowResult(success=True, summary="No failed comments to retry")

        linked = link_tokens([cancellation_token, self._shutdown.token])
        try:
            posting = await self.poster.post_batches(
                failed_comments,
                options,
                batch_size=options.batch_size or self.posting_config.batch_size,
                cancellation_token=linked.token,
            )
        except Exception as e:
            logger.exception(f"Retry failed: {e}")
            return WorkflowResult(success=False, errors=[str(e)], summary=f"Retry failed: {e}")
        finally:
            linked.dispose()

        return WorkflowResult(
            success=not posting.errors and not posting.cancelled,
            posted_comments=posting.success_count,
            errors=list(posting.errors),
            summary=(
                f"Retry completed: {posting.success_count}/{posting.thread_count} "
                "comment threads posted successfully"
            ),
            posted_threads=list(posting.posted_threads),
            failed_comments=list(posting.failed_comments),
        )
