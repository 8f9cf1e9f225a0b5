"""Data models for review-poster."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Severity(str, Enum):
    """Review comment severity."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ThreadStatus(str, Enum):
    """Azure DevOps thread status values."""

    ACTIVE = "active"
    FIXED = "fixed"
    WONT_FIX = "wontFix"
    CLOSED = "closed"
    BY_DESIGN = "byDesign"
    PENDING = "pending"


class ChangeType(str, Enum):
    """File change types in a pull request diff."""

    ADD = "add"
    EDIT = "edit"
    DELETE = "delete"
    RENAME = "rename"


class PreviewAction(str, Enum):
    """Decision returned by the preview gate."""

    POST = "post"
    CANCEL = "cancel"


class WorkflowPhase(str, Enum):
    """Phases of the comment posting workflow."""

    VALIDATING = "validating"
    ANALYZING = "analyzing"
    PREVIEWING = "previewing"
    POSTING = "posting"
    SUMMARIZING = "summarizing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ReviewComment(BaseModel):
    """AI-drafted review comment, before grouping into threads."""

    model_config = ConfigDict(populate_by_name=True)

    id: str | None = Field(default=None, description="Draft comment ID")
    file_name: str = Field(alias="fileName", description="File path the comment refers to")
    line_number: int = Field(alias="lineNumber", ge=1, description="1-based line number")
    content: str = Field(description="Comment text")
    suggestion: str | None = Field(default=None, description="Suggested replacement code")
    severity: Severity = Field(default=Severity.INFO, description="Comment severity")
    is_approved: bool = Field(
        default=False, alias="isApproved", description="Approved for posting"
    )
    original_content: str | None = Field(
        default=None, alias="originalContent", description="Content before user edits"
    )

    @field_validator("file_name")
    @classmethod
    def validate_file_name(cls, v: str) -> str:
        """Validate file name is not empty."""
        if not v or not v.strip():
            raise ValueError("File name cannot be empty")
        return v


class ThreadComment(BaseModel):
    """Single comment body inside a thread."""

    content: str = Field(description="Markdown body")
    comment_type: str = Field(default="text", description="Azure DevOps comment type")


class CommentThread(BaseModel):
    """Discussion thread anchored at a file and line."""

    file_path: str = Field(description="File path the thread is anchored to")
    line: int = Field(ge=1, description="Anchor line")
    status: ThreadStatus = Field(default=ThreadStatus.ACTIVE, description="Thread status")
    comments: list[ThreadComment] = Field(description="Comment bodies")
    source_comments: list[ReviewComment] = Field(
        default_factory=list, exclude=True, description="Review comments folded into this thread"
    )

    def to_payload(self) -> dict[str, Any]:
        """Serialise to the Azure DevOps pull request thread body."""
        position = {"line": self.line, "offset": 1}
        return {
            "comments": [
                {"parentCommentId": 0, "content": c.content, "commentType": c.comment_type}
                for c in self.comments
            ],
            "status": self.status.value,
            "threadContext": {
                "filePath": self.file_path,
                "rightFileStart": position,
                "rightFileEnd": dict(position),
            },
        }


class Repository(BaseModel):
    """Git repository in an Azure DevOps project."""

    id: str = Field(description="Repository ID")
    name: str = Field(description="Repository name")
    url: str | None = Field(default=None, description="API URL")


class CreatedThread(BaseModel):
    """Thread as returned by the remote service after creation."""

    model_config = ConfigDict(extra="allow")

    id: int = Field(description="Thread ID assigned by the service")


class PostedThreadInfo(BaseModel):
    """Successfully posted thread."""

    thread_id: int = Field(description="Remote thread ID")
    repository_id: str = Field(description="Repository the pull request belongs to")
    file_name: str = Field(description="File the thread is anchored to")
    line_number: int = Field(description="Anchor line")
    remote_url: str = Field(description="Browser URL of the thread")
    comments_count: int = Field(description="Number of comment bodies in the thread")


class DiffLine(BaseModel):
    """Single line of a file diff."""

    line_number: int = Field(description="Line number in the new file")
    type: str = Field(description="added, deleted, modified or context")
    content: str = Field(description="Line text")
    original_line_number: int | None = Field(default=None, description="Line in the old file")


class FileDiff(BaseModel):
    """Diff of one file in the pull request."""

    file_path: str = Field(description="File path")
    change_type: ChangeType = Field(description="Change type")
    old_file_path: str | None = Field(default=None, description="Previous path for renames")
    lines: list[DiffLine] = Field(default_factory=list, description="Diff lines")
    added_lines: int = Field(default=0, description="Added line count")
    deleted_lines: int = Field(default=0, description="Deleted line count")
    is_binary: bool = Field(default=False, description="Binary file")
    is_large_file: bool = Field(default=False, description="File exceeds analysis size limit")


class AnalysisProgress(BaseModel):
    """Progress report from the analysis engine."""

    completed: int = Field(description="Files completed")
    total: int = Field(description="Files to analyse")
    current_file_name: str = Field(default="", description="File being analysed")
    stage: str = Field(default="analyzing", description="Engine stage")
    message: str | None = Field(default=None, description="Progress message")

    @property
    def percentage(self) -> int:
        """Completion percentage, 0 when there is nothing to analyse."""
        if self.total <= 0:
            return 0
        return round(self.completed / self.total * 100)


class AnalysisFileError(BaseModel):
    """Per-file analysis failure, recovered by the workflow."""

    file_name: str = Field(description="File that failed")
    error: str = Field(description="Error message")
    severity: str = Field(default="error", description="warning or error")
    can_retry: bool = Field(default=False, description="Whether analysis may be retried")


class SeverityCounts(BaseModel):
    """Comment counts per severity."""

    error: int = 0
    warning: int = 0
    info: int = 0


class AnalysisSummary(BaseModel):
    """Summary statistics of an analysis run."""

    total_files: int = Field(default=0, description="Files submitted")
    analyzed_files: int = Field(default=0, description="Files analysed")
    skipped_files: int = Field(default=0, description="Files skipped")
    error_files: int = Field(default=0, description="Files that failed")
    total_comments: int = Field(default=0, description="Comments generated")
    comments_by_severity: SeverityCounts = Field(default_factory=SeverityCounts)
    processing_time_ms: int = Field(default=0, description="Engine processing time")


class AnalysisResult(BaseModel):
    """Output of the analysis engine."""

    comments: list[ReviewComment] = Field(default_factory=list)
    summary: AnalysisSummary = Field(default_factory=AnalysisSummary)
    errors: list[AnalysisFileError] = Field(default_factory=list)


class PreviewResult(BaseModel):
    """Outcome of the preview gate."""

    action: PreviewAction = Field(description="post or cancel")
    comments: list[ReviewComment] = Field(default_factory=list)
    approved_count: int = Field(default=0, description="Comments approved by the user")


class WorkflowOptions(BaseModel):
    """Inputs of one workflow run.

    Required values are checked by the orchestrator's validation phase, not
    here, so that missing input becomes a structured failure result.
    """

    pull_request_id: int = Field(default=0, description="Pull request ID")
    organization_url: str = Field(default="", description="Azure DevOps organization URL")
    project_name: str = Field(default="", description="Azure DevOps project")
    custom_instructions: str | None = Field(default=None, description="Extra analysis instructions")
    model_preference: str | None = Field(default=None, description="Preferred language model")
    skip_preview: bool = Field(default=False, description="Approve all comments without preview")
    batch_size: int | None = Field(default=None, description="Threads per batch")
    repository_name: str | None = Field(
        default=None, description="Repository name or ID, defaults to the first repository"
    )


class BatchPostResult(BaseModel):
    """Aggregate outcome of a posting run."""

    success_count: int = 0
    errors: list[str] = Field(default_factory=list)
    posted_threads: list[PostedThreadInfo] = Field(default_factory=list)
    failed_comments: list[ReviewComment] = Field(default_factory=list)
    thread_count: int = 0
    batch_count: int = 0
    cancelled: bool = False

    @property
    def successful(self) -> bool:
        """At least one thread posted, or nothing failed."""
        return self.success_count > 0 or not self.errors


class WorkflowResult(BaseModel):
    """Result of a workflow run."""

    model_config = ConfigDict(frozen=True)

    success: bool = Field(description="Whether the workflow succeeded")
    posted_comments: int = Field(default=0, description="Threads posted")
    errors: list[str] = Field(default_factory=list, description="Human-readable errors")
    summary: str = Field(description="Human-readable summary")
    posted_threads: list[PostedThreadInfo] | None = Field(
        default=None, description="Posted thread details"
    )
    failed_comments: list[ReviewComment] | None = Field(
        default=None, description="Comments whose threads failed to post"
    )


class ConfigValidationResult(BaseModel):
    """Result of configuration validation."""

    is_valid: bool = Field(description="Whether the configuration is usable")
    error: str | None = Field(default=None, description="First problem found")
    details: str | None = Field(default=None, description="Additional detail")


class AzureDevOpsConfig(BaseModel):
    """Azure DevOps connection settings."""

    organization_url: str | None = Field(default=None, description="Organization URL")
    default_project: str | None = Field(default=None, description="Default project")
    repository: str | None = Field(default=None, description="Repository name or ID")
    command: str = Field(default="az", description="Azure CLI executable")
    request_timeout: int = Field(default=60, description="Timeout per az call (seconds)")

    @field_validator("request_timeout")
    @classmethod
    def validate_request_timeout(cls, v: int) -> int:
        """Validate request timeout is reasonable."""
        if v < 1:
            raise ValueError("Request timeout must be at least 1 second")
        if v > 600:
            raise ValueError("Request timeout cannot exceed 10 minutes")
        return v


class PostingConfig(BaseModel):
    """Batching and retry settings."""

    batch_size: int = Field(default=5, description="Threads per batch")
    max_retries: int = Field(default=3, description="Attempts per thread")
    base_delay: float = Field(default=1.0, description="Base backoff delay (seconds)")
    max_jitter: float = Field(default=1.0, description="Upper bound of random jitter (seconds)")
    inter_batch_delay: float = Field(default=1.0, description="Pause between batches (seconds)")

    @field_validator("batch_size")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        """Validate batch size is reasonable."""
        if v < 1:
            raise ValueError("Batch size must be at least 1")
        if v > 100:
            raise ValueError("Batch size cannot exceed 100")
        return v

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        """Validate max retries is reasonable."""
        if v < 1:
            raise ValueError("Max retries must be at least 1")
        if v > 10:
            raise ValueError("Max retries cannot exceed 10")
        return v

    @field_validator("base_delay", "max_jitter", "inter_batch_delay")
    @classmethod
    def validate_delays(cls, v: float) -> float:
        """Validate delays are not negative."""
        if v < 0:
            raise ValueError("Delays cannot be negative")
        return v


class WorkflowConfig(BaseModel):
    """Workflow behaviour settings."""

    skip_preview: bool = Field(default=False, description="Post without interactive preview")


class Config(BaseModel):
    """Main configuration model."""

    version: str = Field(default="1.0", description="Config version")
    azure_devops: AzureDevOpsConfig = Field(default_factory=AzureDevOpsConfig)
    posting: PostingConfig = Field(default_factory=PostingConfig)
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)

    model_config = {"extra": "allow"}
