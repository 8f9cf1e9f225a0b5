"""Azure DevOps integration via the az CLI (azure-devops extension)."""

import json
import os
import tempfile
from typing import Optional

from pydantic import ValidationError

from review_poster.integrations.base import ReviewClientError, extract_status_code
from review_poster.models import CommentThread, CreatedThread, Repository
from review_poster.utils.logger import get_logger
from review_poster.utils.shell import ShellError, check_command_exists, run_command_async

logger = get_logger(__name__)

API_VERSION = "7.1"

# Azure DevOps error identifiers that carry no HTTP status in az output
_TF_STATUS_CODES = {
    "TF400813": 401,  # user not authorized
    "TF401019": 404,  # repository missing or not visible
    "TF401180": 404,  # pull request not found
}


def _status_from_stderr(stderr: str) -> Optional[int]:
    for identifier, status in _TF_STATUS_CODES.items():
        if identifier in stderr:
            return status
    return extract_status_code(stderr)


class AzureDevOpsCliClient:
    """Review client that talks to Azure DevOps through ``az``."""

    def __init__(self, organization_url: str, command: str = "az", timeout: float = 60):
        self.organization_url = organization_url.rstrip("/")
        self.command = command
        self.timeout = timeout

    def is_available(self) -> bool:
        """Check the az executable is on PATH."""
        return check_command_exists(self.command)

    async def _invoke(self, args: list[str]) -> object:
        cmd = [self.command, *args, "--organization", self.organization_url, "--output", "json"]
        try:
            result = await run_command_async(cmd, check=True, timeout=self.timeout)
        except ShellError as e:
            message = (e.stderr or str(e)).strip()
            raise ReviewClientError(message, status_code=_status_from_stderr(message)) from e

        try:
            return json.loads(result.stdout or "null")
        except json.JSONDecodeError as e:
            raise ReviewClientError(f"Failed to parse az output: {e}") from e

    async def list_repositories(self, project: str) -> list[Repository]:
        """List git repositories of a project.

        Raises:
            ReviewClientError: If the repositories cannot be fetched
        """
        data = await self._invoke(["repos", "list", "--project", project])
        if not isinstance(data, list):
            raise ReviewClientError(f"Unexpected repository listing for project {project}")

        try:
            return [Repository.model_validate(item) for item in data]
        except ValidationError as e:
            raise ReviewClientError(f"Failed to parse repository data: {e}") from e

    async def create_thread(
        self,
        project: str,
        repository_id: str,
        pull_request_id: int,
        thread: CommentThread,
    ) -> CreatedThread:
        """Create a pull request comment thread.

        The thread body goes through a temporary file so large comments do
        not hit argument length limits.

        Raises:
            ReviewClientError: If the thread cannot be created
        """
        with tempfile.NamedTemporaryFile(mode="w", delete=False, suffix=".json") as temp_file:
            json.dump(thread.to_payload(), temp_file)
            payload_path = temp_file.name

        try:
            data = await self._invoke(
                [
                    "devops", "invoke",
                    "--area", "git",
                    "--resource", "pullRequestThreads",
                    "--route-parameters",
                    f"project={project}",
                    f"repositoryId={repository_id}",
                    f"pullRequestId={pull_request_id}",
                    "--http-method", "POST",
                    "--in-file", payload_path,
                    "--api-version", API_VERSION,
                ]
            )
        finally:
            try:
                os.unlink(payload_path)
            except OSError:
                logger.debug(f"Could not remove temporary payload {payload_path}")

        try:
            created = CreatedThread.model_validate(data)
        except ValidationError as e:
            raise ReviewClientError(f"Failed to parse created thread: {e}") from e

        logger.debug(f"Created thread {created.id} on {thread.file_path}:{thread.line}")
        return created
