"""Result and summary composition for posting workflows.

Everything here is pure: inputs in, ``WorkflowResult`` or text out.
"""

from review_poster.models import (
    AnalysisResult,
    BatchPostResult,
    PreviewResult,
    WorkflowPhase,
    WorkflowResult,
)


def format_analysis_errors(analysis: AnalysisResult) -> list[str]:
    """Analysis failures as ``file: error`` strings."""
    return [f"{e.file_name}: {e.error}" for e in analysis.errors]


def create_workflow_summary(
    analysis: AnalysisResult,
    preview: PreviewResult,
    posting: BatchPostResult,
    duration_seconds: int,
) -> str:
    """Multi-line summary of a workflow that reached the posting phase."""
    stats = analysis.summary
    severity = stats.comments_by_severity

    if posting.cancelled:
        header = f"Workflow cancelled during posting after {duration_seconds}s:"
    else:
        header = f"Workflow completed in {duration_seconds}s:"

    lines = [
        header,
        f"• Analyzed {stats.analyzed_files}/{stats.total_files} files",
        f"• Generated {stats.total_comments} comments ({severity.error} errors, "
        f"{severity.warning} warnings, {severity.info} suggestions)",
        f"• User approved {preview.approved_count} comments",
        f"• Successfully posted {posting.success_count}/{posting.thread_count} comment threads",
    ]

    if posting.errors:
        lines.append(f"• {len(posting.errors)} posting errors occurred")
    if stats.skipped_files > 0:
        lines.append(f"• {stats.skipped_files} files were skipped")
    if analysis.errors:
        lines.append(f"• {len(analysis.errors)} analysis errors occurred")

    return "\n".join(lines)


def aggregate_workflow_result(
    analysis: AnalysisResult,
    preview: PreviewResult,
    posting: BatchPostResult,
    duration_seconds: int,
) -> WorkflowResult:
    """Final result of a workflow that reached the posting phase.

    Successful unless cancelled or every attempted thread failed.
    """
    return WorkflowResult(
        success=posting.successful and not posting.cancelled,
        posted_comments=posting.success_count,
        errors=format_analysis_errors(analysis) + list(posting.errors),
        summary=create_workflow_summary(analysis, preview, posting, duration_seconds),
        posted_threads=list(posting.posted_threads),
        failed_comments=list(posting.failed_comments),
    )


def batch_post_result(posting: BatchPostResult, summary: str) -> WorkflowResult:
    """Wrap a posting outcome that ran outside the full workflow."""
    return WorkflowResult(
        success=posting.successful and not posting.cancelled,
        posted_comments=posting.success_count,
        errors=list(posting.errors),
        summary=summary,
        posted_threads=list(posting.posted_threads),
        failed_comments=list(posting.failed_comments),
    )


def no_changes_result() -> WorkflowResult:
    return WorkflowResult(success=True, summary="No file changes to analyze")


def no_comments_result(analysis: AnalysisResult) -> WorkflowResult:
    return WorkflowResult(
        success=True,
        errors=format_analysis_errors(analysis),
        summary=(
            "Analysis completed with no comments generated. "
            f"{analysis.summary.analyzed_files} files analyzed."
        ),
    )


def cancelled_by_user_result() -> WorkflowResult:
    return WorkflowResult(success=False, summary="Review cancelled by user")


def no_approvals_result() -> WorkflowResult:
    return WorkflowResult(success=True, summary="No comments were approved for posting")


def validation_failure_result(reason: str) -> WorkflowResult:
    return WorkflowResult(
        success=False,
        errors=[reason],
        summary=f"Workflow failed during validation: {reason}",
    )


def phase_failure_result(phase: WorkflowPhase, reason: str, duration_seconds: int) -> WorkflowResult:
    return WorkflowResult(
        success=False,
        errors=[reason],
        summary=f"Workflow failed during {phase.value} after {duration_seconds}s: {reason}",
    )


def cancelled_result(phase: WorkflowPhase, duration_seconds: int) -> WorkflowResult:
    """Cancellation outcome, kept apart from network failures."""
    return WorkflowResult(
        success=False,
        summary=f"Workflow cancelled during {phase.value} after {duration_seconds}s",
    )
