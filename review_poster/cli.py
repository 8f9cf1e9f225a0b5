"""Click CLI interface for review-poster."""

import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Awaitable, Callable, Optional

import click
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from review_poster import __version__
from review_poster.cancellation import CancellationToken, CancellationTokenSource
from review_poster.config import ConfigError, config_manager, get_config
from review_poster.integrations.azure import AzureDevOpsCliClient
from review_poster.integrations.preview import ConsolePreviewGate
from review_poster.models import Config, PreviewAction, ReviewComment, WorkflowOptions, WorkflowResult
from review_poster.utils.logger import enable_verbose_logging, get_logger
from review_poster.workflows.batch import build_pull_request_url
from review_poster.workflows.orchestrator import WorkflowOrchestrator
from review_poster.workflows.session import ReviewSession

logger = get_logger(__name__)
console = Console()


class CommentFileError(Exception):
    """Comment file cannot be read or does not hold review comments."""
    pass


def load_comments(path: Path) -> list[ReviewComment]:
    """Load review comments from a JSON or YAML file.

    The file holds either a list of comments or a mapping with a
    ``comments`` list. Keys may use camelCase or snake_case.
    """
    try:
        # YAML is a superset of JSON
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as e:
        raise CommentFileError(f"Failed to read comment file {path}: {e}") from e

    if isinstance(data, dict):
        data = data.get("comments")
    if data is None:
        return []
    if not isinstance(data, list):
        raise CommentFileError(f"Comment file {path} must contain a list of comments")

    try:
        return [ReviewComment.model_validate(item) for item in data]
    except ValidationError as e:
        raise CommentFileError(f"Invalid comment in {path}: {e}") from e


def save_comments(path: Path, comments: list[ReviewComment]) -> None:
    """Write comments as JSON in the same shape ``load_comments`` reads."""
    payload = [c.model_dump(mode="json", by_alias=True, exclude_none=True) for c in comments]
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2) + "\n")


def build_options(
    config: Config,
    pull_request_id: int,
    organization: Optional[str],
    project: Optional[str],
    repository: Optional[str],
    batch_size: Optional[int],
) -> WorkflowOptions:
    """Merge command line options over configured defaults."""
    azure = config.azure_devops
    return WorkflowOptions(
        pull_request_id=pull_request_id,
        organization_url=organization or azure.organization_url or "",
        project_name=project or azure.default_project or "",
        repository_name=repository or azure.repository,
        batch_size=batch_size,
        skip_preview=True,
    )


def check_options(options: WorkflowOptions) -> None:
    """Exit with an error if the posting target is incomplete."""
    problems = []
    if options.pull_request_id <= 0:
        problems.append("Valid pull request ID is required")
    if not options.organization_url:
        problems.append(
            "Organization URL is required "
            "(--organization or 'review-poster config set azure_devops.organization_url <url>')"
        )
    if not options.project_name:
        problems.append(
            "Project name is required "
            "(--project or 'review-poster config set azure_devops.default_project <name>')"
        )
    if options.batch_size is not None and options.batch_size < 1:
        problems.append("Batch size must be at least 1")

    if problems:
        for problem in problems:
            console.print(f"[red]Error:[/red] {escape(problem)}")
        sys.exit(1)


def create_session(config: Config, organization_url: str) -> ReviewSession:
    """Wire the Azure DevOps client into a posting session."""
    client = AzureDevOpsCliClient(
        organization_url,
        command=config.azure_devops.command,
        timeout=config.azure_devops.request_timeout,
    )
    if not client.is_available():
        console.print(
            f"[red]Error:[/red] Azure CLI '{config.azure_devops.command}' not found. "
            "Install it and run [cyan]az extension add --name azure-devops[/cyan]"
        )
        sys.exit(1)

    orchestrator = WorkflowOrchestrator(client, posting_config=config.posting)
    return ReviewSession(orchestrator)


def run_cancellable(
    operation: Callable[[CancellationToken], Awaitable[WorkflowResult]],
) -> WorkflowResult:
    """Run an async posting operation, turning Ctrl+C into cancellation.

    The first interrupt cancels the token so the run stops at the next
    thread boundary and still reports what was posted.
    """

    async def runner() -> WorkflowResult:
        source = CancellationTokenSource()
        loop = asyncio.get_running_loop()
        handler_installed = False
        try:
            loop.add_signal_handler(signal.SIGINT, source.cancel)
            handler_installed = True
        except (NotImplementedError, RuntimeError, ValueError):
            logger.debug("Cannot install SIGINT handler; Ctrl+C will abort immediately")

        try:
            return await operation(source.token)
        finally:
            if handler_installed:
                loop.remove_signal_handler(signal.SIGINT)
            source.dispose()

    return asyncio.run(runner())


def print_result(result: WorkflowResult, options: WorkflowOptions) -> None:
    """Show the summary, posted threads and errors of a run."""
    style = "green" if result.success else "red"
    console.print(f"[{style}]{escape(result.summary)}[/{style}]")

    if result.posted_threads:
        table = Table(title="Posted Threads")
        table.add_column("Thread", justify="right", style="cyan")
        table.add_column("Location")
        table.add_column("URL", style="blue")
        for thread in result.posted_threads:
            table.add_row(
                str(thread.thread_id),
                escape(f"{thread.file_name}:{thread.line_number}"),
                thread.remote_url,
            )
        console.print(table)
        pr_url = build_pull_request_url(
            options.organization_url,
            options.project_name,
            result.posted_threads[0].repository_id,
            options.pull_request_id,
        )
        console.print(f"View pull request: [blue]{pr_url}[/blue]")

    for error in result.errors:
        console.print(f"[red]✗[/red] {escape(error)}")


def report_failed(result: WorkflowResult, save_failed: Optional[Path]) -> None:
    if not result.failed_comments:
        return
    if save_failed is None:
        console.print(
            f"[yellow]{len(result.failed_comments)} comment(s) failed to post. "
            "Use --save-failed to keep them for [cyan]review-poster retry[/cyan][/yellow]"
        )
        return

    save_comments(save_failed, result.failed_comments)
    console.print(
        f"[yellow]Saved {len(result.failed_comments)} failed comment(s) to {save_failed}[/yellow]"
    )


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version and exit")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx: click.Context, version: bool, verbose: bool) -> None:
    """Review Poster - post AI review comments to Azure DevOps pull requests.

    Groups draft comments into threads by file and line, then posts them
    in batches with retries.
    """
    if version:
        click.echo(f"review-poster version {__version__}")
        sys.exit(0)

    if verbose:
        enable_verbose_logging()

    if ctx.invoked_subcommand is None and not version:
        click.echo(ctx.get_help())


@cli.command()
def init() -> None:
    """Initialize review-poster configuration for the current project."""
    try:
        user_config_path = config_manager.list_config_files()["user"]
        if user_config_path is None:
            user_config_path = config_manager.create_default_config(user_level=True)
            console.print(f"[green]✓[/green] User configuration created: {user_config_path}")

        project_config_path = config_manager.create_default_config(user_level=False)
        console.print(f"[green]✓[/green] Project configuration initialized: {project_config_path}")

        console.print("\n[bold]Next steps:[/bold]")
        console.print("1. Sign in to Azure: [cyan]az login[/cyan]")
        console.print("2. Add the DevOps extension: [cyan]az extension add --name azure-devops[/cyan]")
        console.print(
            "3. Set the organization: "
            "[cyan]review-poster config set azure_devops.organization_url https://dev.azure.com/<org>[/cyan]"
        )
        console.print(
            "4. Set the project: "
            "[cyan]review-poster config set azure_devops.default_project <project>[/cyan]"
        )

    except ConfigError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)


@cli.group()
def config() -> None:
    """Configuration management."""
    pass


@config.command("get")
@click.argument("key")
def config_get(key: str) -> None:
    """Get configuration value by key.

    KEY: Dot-separated configuration key (e.g., 'posting.batch_size')
    """
    try:
        value = config_manager.get_config_value(key)
        console.print(f"{key}: {value}")

    except ConfigError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.option(
    "--project", "-p", is_flag=True,
    help="Set in project config instead of user config"
)
def config_set(key: str, value: str, project: bool) -> None:
    """Set configuration value.

    KEY: Dot-separated configuration key (e.g., 'azure_devops.default_project')
    VALUE: Value to set
    """
    try:
        parsed_value = value
        if value.lower() in ("true", "false"):
            parsed_value = value.lower() == "true"
        elif value.isdigit():
            parsed_value = int(value)
        else:
            try:
                parsed_value = float(value)
            except ValueError:
                parsed_value = value

        config_manager.set_config_value(key, parsed_value, user_level=not project)

        config_type = "project" if project else "user"
        console.print(f"[green]✓[/green] {config_type.title()} config updated: {key} = {parsed_value}")

    except ConfigError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)


@config.command("list")
def config_list() -> None:
    """List all configuration files and their status."""
    config_files = config_manager.list_config_files()

    table = Table(title="Configuration Files")
    table.add_column("Type", style="cyan")
    table.add_column("Path")
    table.add_column("Status", style="green")

    for config_type, path in config_files.items():
        if path and path.exists():
            status = "✓ Exists"
            path_str = str(path)
        else:
            status = "✗ Not found"
            path_str = "N/A" if path is None else str(path)

        table.add_row(config_type.title(), path_str, status)

    console.print(table)


@config.command("validate")
def config_validate() -> None:
    """Check the configuration can drive a posting run."""
    result = config_manager.validate()
    if result.is_valid:
        console.print("[green]✓[/green] Configuration is valid")
        return

    console.print(f"[red]Error:[/red] {escape(result.error or '')}")
    if result.details:
        console.print(f"[dim]{result.details}[/dim]")
    sys.exit(1)


def _target_options(func):
    """Options shared by the posting commands."""
    decorators = [
        click.option("--pr", "pull_request_id", type=int, required=True, help="Pull request ID"),
        click.option("--organization", "--org", help="Organization URL (overrides config)"),
        click.option("--project", help="Project name (overrides config)"),
        click.option("--repository", "--repo", help="Repository name or ID (defaults to the first)"),
        click.option("--batch-size", type=int, help="Threads per batch (overrides config)"),
        click.option(
            "--save-failed",
            type=click.Path(dir_okay=False, path_type=Path),
            help="Write comments that failed to post to this file",
        ),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


@cli.command()
@click.argument("comments_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@_target_options
@click.option("--yes", "-y", is_flag=True, help="Post every comment without preview")
def post(
    comments_file: Path,
    pull_request_id: int,
    organization: Optional[str],
    project: Optional[str],
    repository: Optional[str],
    batch_size: Optional[int],
    save_failed: Optional[Path],
    yes: bool,
) -> None:
    """Post review comments from COMMENTS_FILE to a pull request.

    COMMENTS_FILE: JSON or YAML list of comments with fileName, lineNumber,
    content and optional suggestion and severity.
    """
    try:
        app_config = get_config()
        options = build_options(
            app_config, pull_request_id, organization, project, repository, batch_size
        )
        check_options(options)

        comments = load_comments(comments_file)
        if not comments:
            console.print("[yellow]No comments to post[/yellow]")
            return

        if yes or app_config.workflow.skip_preview:
            comments = [c.model_copy(update={"is_approved": True}) for c in comments]
        else:
            preview = asyncio.run(ConsolePreviewGate(console).review(comments))
            if preview.action == PreviewAction.CANCEL:
                console.print("[yellow]Review cancelled by user[/yellow]")
                return
            comments = [c for c in preview.comments if c.is_approved]
            if not comments:
                console.print("[yellow]No comments were approved for posting[/yellow]")
                return

        session = create_session(app_config, options.organization_url)
        console.print(
            f"[blue]Posting {len(comments)} comment(s) to PR #{pull_request_id}...[/blue]"
        )
        result = run_cancellable(lambda token: session.post_comments(comments, options, token))

        print_result(result, options)
        report_failed(result, save_failed)
        if not result.success:
            sys.exit(1)

    except (ConfigError, CommentFileError) as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)


@cli.command()
@click.argument("failed_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@_target_options
def retry(
    failed_file: Path,
    pull_request_id: int,
    organization: Optional[str],
    project: Optional[str],
    repository: Optional[str],
    batch_size: Optional[int],
    save_failed: Optional[Path],
) -> None:
    """Retry comments saved by a previous --save-failed run.

    FAILED_FILE: File written by 'review-poster post --save-failed'
    """
    try:
        app_config = get_config()
        options = build_options(
            app_config, pull_request_id, organization, project, repository, batch_size
        )
        check_options(options)

        failed_comments = load_comments(failed_file)
        if not failed_comments:
            console.print("[yellow]No failed comments to retry[/yellow]")
            return

        session = create_session(app_config, options.organization_url)
        result = run_cancellable(
            lambda token: session.retry_failed_comments(failed_comments, options, token)
        )

        print_result(result, options)
        report_failed(result, save_failed)
        if not result.success:
            sys.exit(1)

    except (ConfigError, CommentFileError) as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)


if __name__ == "__main__":
    cli()
