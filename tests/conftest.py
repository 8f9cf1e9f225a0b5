"""Shared test configuration and fixtures."""

import os
from pathlib import Path
from typing import Callable, Optional

import pytest

from review_poster.config import ConfigManager
from review_poster.models import (
    CommentThread,
    CreatedThread,
    Repository,
    ReviewComment,
    Severity,
    WorkflowOptions,
)


class FakeReviewClient:
    """In-memory review client recording every call."""

    def __init__(self, repositories: Optional[list[Repository]] = None):
        if repositories is None:
            repositories = [Repository(id="repo-1", name="service")]
        self.repositories = repositories
        self.list_error: Optional[Exception] = None
        self.list_calls = 0
        self.create_calls: list[CommentThread] = []
        self.on_create: Optional[Callable[[CommentThread], None]] = None
        self._queued_failures: dict[str, list[Exception]] = {}
        self._permanent_failures: dict[str, Exception] = {}
        self._next_id = 100

    def fail_once(self, file_path: str, *errors: Exception) -> None:
        """Queue errors raised by the next posts to ``file_path``."""
        self._queued_failures.setdefault(file_path, []).extend(errors)

    def fail_always(self, file_path: str, error: Exception) -> None:
        self._permanent_failures[file_path] = error

    def attempts_for(self, file_path: str) -> int:
        return sum(1 for t in self.create_calls if t.file_path == file_path)

    async def list_repositories(self, project: str) -> list[Repository]:
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return list(self.repositories)

    async def create_thread(
        self,
        project: str,
        repository_id: str,
        pull_request_id: int,
        thread: CommentThread,
    ) -> CreatedThread:
        self.create_calls.append(thread)
        if self.on_create is not None:
            self.on_create(thread)

        if thread.file_path in self._permanent_failures:
            raise self._permanent_failures[thread.file_path]
        queued = self._queued_failures.get(thread.file_path)
        if queued:
            raise queued.pop(0)

        self._next_id += 1
        return CreatedThread(id=self._next_id)


class RecordingSleep:
    """Sleep replacement that records delays and returns immediately."""

    def __init__(self):
        self.delays: list[float] = []
        self.on_sleep: Optional[Callable[[int], None]] = None

    async def __call__(self, delay: float, token=None) -> bool:
        self.delays.append(delay)
        if self.on_sleep is not None:
            self.on_sleep(len(self.delays))
        return not (token is not None and token.is_cancellation_requested)


@pytest.fixture
def temp_home(tmp_path):
    """Create a temporary home directory for tests."""
    return tmp_path


@pytest.fixture
def isolated_config_manager(temp_home, monkeypatch):
    """Create an isolated ConfigManager that doesn't touch real config files."""
    monkeypatch.setattr(Path, "home", lambda: temp_home)
    monkeypatch.setattr("review_poster.config.get_git_root", lambda: None)

    for key in list(os.environ):
        if key.startswith("REVIEW_POSTER_"):
            monkeypatch.delenv(key)

    manager = ConfigManager()
    manager._user_config_path = temp_home / ".review-poster" / "config.yaml"
    manager._project_config_path = None
    manager._config = None

    return manager


@pytest.fixture(autouse=True)
def mock_global_config_manager(isolated_config_manager, monkeypatch):
    """Automatically mock the global config_manager for all tests."""
    import review_poster.cli
    import review_poster.config

    monkeypatch.setattr(review_poster.config, "config_manager", isolated_config_manager)
    monkeypatch.setattr(review_poster.cli, "config_manager", isolated_config_manager)

    return isolated_config_manager


@pytest.fixture
def mock_git_root(tmp_path, monkeypatch):
    """Mock git root to return a temporary directory."""
    git_root = tmp_path / "git_repo"
    git_root.mkdir()

    monkeypatch.setattr("review_poster.config.get_git_root", lambda: git_root)

    return git_root


@pytest.fixture
def configured(isolated_config_manager):
    """User config pointing at a test organization and project."""
    isolated_config_manager.set_config_value(
        "azure_devops.organization_url", "https://dev.azure.com/contoso"
    )
    isolated_config_manager.set_config_value("azure_devops.default_project", "Platform Team")
    isolated_config_manager.set_config_value("posting.inter_batch_delay", 0)
    isolated_config_manager.set_config_value("posting.base_delay", 0)
    isolated_config_manager.set_config_value("posting.max_jitter", 0)
    return isolated_config_manager


@pytest.fixture
def fake_client():
    return FakeReviewClient()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def make_comment():
    """Factory for review comments."""

    def factory(
        file_name: str = "src/app.ts",
        line_number: int = 1,
        content: str = "Consider renaming",
        **kwargs,
    ) -> ReviewComment:
        kwargs.setdefault("severity", Severity.WARNING)
        kwargs.setdefault("is_approved", True)
        return ReviewComment(
            file_name=file_name, line_number=line_number, content=content, **kwargs
        )

    return factory


@pytest.fixture
def workflow_options():
    return WorkflowOptions(
        pull_request_id=42,
        organization_url="https://dev.azure.com/contoso",
        project_name="Platform Team",
    )


@pytest.fixture
def runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner
    return CliRunner()
