"""Terminal preview gate for draft review comments."""

from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from review_poster.models import PreviewAction, PreviewResult, ReviewComment, Severity

SEVERITY_STYLES = {
    Severity.ERROR: "red",
    Severity.WARNING: "yellow",
    Severity.INFO: "cyan",
}


class ConsolePreviewGate:
    """Shows draft comments in a table and asks which ones to post."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def render(self, comments: list[ReviewComment]) -> Table:
        table = Table(title=f"Draft review comments ({len(comments)})")
        table.add_column("#", justify="right")
        table.add_column("Location", style="bold")
        table.add_column("Severity")
        table.add_column("Comment")

        for index, comment in enumerate(comments, start=1):
            style = SEVERITY_STYLES.get(comment.severity, "white")
            body = escape(comment.content)
            if comment.suggestion:
                body += "\n[dim]Suggestion available[/dim]"
            table.add_row(
                str(index),
                escape(f"{comment.file_name}:{comment.line_number}"),
                f"[{style}]{comment.severity.value}[/{style}]",
                body,
            )
        return table

    async def review(self, comments: list[ReviewComment]) -> PreviewResult:
        """Ask the user to post all, pick individually, or cancel."""
        self.console.print(self.render(comments))

        choice = click.prompt(
            "Post comments?",
            type=click.Choice(["all", "pick", "cancel"]),
            default="all",
        )

        if choice == "cancel":
            return PreviewResult(action=PreviewAction.CANCEL, comments=comments, approved_count=0)

        if choice == "all":
            reviewed = [c.model_copy(update={"is_approved": True}) for c in comments]
        else:
            reviewed = []
            for index, comment in enumerate(comments, start=1):
                approved = click.confirm(
                    f"[{index}] {comment.file_name}:{comment.line_number} post?", default=True
                )
                reviewed.append(comment.model_copy(update={"is_approved": approved}))

        approved_count = sum(1 for c in reviewed if c.is_approved)
        return PreviewResult(
            action=PreviewAction.POST, comments=reviewed, approved_count=approved_count
        )
