"""Workflow modules for grouping, posting and orchestrating review comments."""

from review_poster.workflows.batch import (
    BatchPoster,
    RepositoryResolutionError,
    build_pull_request_url,
    build_thread_url,
    partition,
)
from review_poster.workflows.grouping import (
    format_comment_body,
    group_comments_into_threads,
    thread_key,
)
from review_poster.workflows.orchestrator import (
    WorkflowOrchestrator,
    WorkflowRun,
    WorkflowValidationError,
)
from review_poster.workflows.retry import (
    NonRetryablePostingError,
    PostingError,
    RetryCoordinator,
    TransientPostingError,
    is_retryable,
)
from review_poster.workflows.session import ActiveWorkflow, ReviewSession
from review_poster.workflows.summary import (
    aggregate_workflow_result,
    create_workflow_summary,
)

__all__ = [
    # Grouping
    "group_comments_into_threads",
    "format_comment_body",
    "thread_key",
    # Retry
    "RetryCoordinator",
    "PostingError",
    "NonRetryablePostingError",
    "TransientPostingError",
    "is_retryable",
    # Batch posting
    "BatchPoster",
    "RepositoryResolutionError",
    "build_thread_url",
    "build_pull_request_url",
    "partition",
    # Orchestration
    "WorkflowOrchestrator",
    "WorkflowRun",
    "WorkflowValidationError",
    "ReviewSession",
    "ActiveWorkflow",
    # Results
    "aggregate_workflow_result",
    "create_workflow_summary",
]
