"""Collaborator contracts consumed by the posting workflow."""

import re
from typing import Callable, Optional, Protocol

from review_poster.cancellation import CancellationToken
from review_poster.models import (
    AnalysisProgress,
    AnalysisResult,
    CommentThread,
    ConfigValidationResult,
    CreatedThread,
    FileDiff,
    PreviewResult,
    Repository,
    ReviewComment,
)

ProgressCallback = Callable[[AnalysisProgress], None]

_STATUS_CODE_PATTERN = re.compile(r"\b([45]\d\d)\b")


class ReviewClientError(Exception):
    """Remote review service error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def extract_status_code(text: str) -> Optional[int]:
    """Return the first 4xx/5xx HTTP status code mentioned in ``text``."""
    match = _STATUS_CODE_PATTERN.search(text or "")
    return int(match.group(1)) if match else None


class AnalysisEngine(Protocol):
    """Produces draft review comments from file diffs."""

    async def analyze(
        self,
        diffs: list[FileDiff],
        on_progress: ProgressCallback,
        cancellation_token: CancellationToken,
    ) -> AnalysisResult: ...


class PreviewGate(Protocol):
    """Lets a user approve, edit or reject draft comments."""

    async def review(self, comments: list[ReviewComment]) -> PreviewResult: ...


class ReviewClient(Protocol):
    """Remote pull request review service."""

    async def list_repositories(self, project: str) -> list[Repository]: ...

    async def create_thread(
        self,
        project: str,
        repository_id: str,
        pull_request_id: int,
        thread: CommentThread,
    ) -> CreatedThread: ...


class ConfigValidator(Protocol):
    """Checks stored configuration."""

    def validate(self) -> ConfigValidationResult: ...


class ModelAvailability(Protocol):
    """Reports whether a language model is available for analysis."""

    async def check(self) -> bool: ...
