"""Tests for the terminal preview gate."""

import io
from unittest.mock import patch

import pytest
from rich.console import Console

from review_poster.integrations.preview import ConsolePreviewGate
from review_poster.models import PreviewAction


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def gate(output):
    return ConsolePreviewGate(Console(file=output, width=200, color_system=None))


class TestConsolePreviewGate:
    """Test ConsolePreviewGate."""

    @pytest.mark.asyncio
    async def test_bracketed_text_shown_verbatim(self, gate, output, make_comment):
        comments = [
            make_comment("src/[id].ts", 4, "Close the handle [/b] before returning"),
            make_comment("src/types.py", 9, "Use Dict[str] here"),
        ]

        with patch("review_poster.integrations.preview.click.prompt", return_value="all"):
            result = await gate.review(comments)

        text = output.getvalue()
        assert "Close the handle [/b] before returning" in text
        assert "Use Dict[str] here" in text
        assert "src/[id].ts:4" in text
        assert result.action == PreviewAction.POST
        assert result.approved_count == 2

    @pytest.mark.asyncio
    async def test_cancel(self, gate, make_comment):
        with patch("review_poster.integrations.preview.click.prompt", return_value="cancel"):
            result = await gate.review([make_comment()])

        assert result.action == PreviewAction.CANCEL
        assert result.approved_count == 0

    @pytest.mark.asyncio
    async def test_pick(self, gate, make_comment):
        comments = [make_comment("a.ts"), make_comment("b.ts")]

        with patch("review_poster.integrations.preview.click.prompt", return_value="pick"), \
                patch("review_poster.integrations.preview.click.confirm", side_effect=[False, True]):
            result = await gate.review(comments)

        assert [c.is_approved for c in result.comments] == [False, True]
        assert result.approved_count == 1

    def test_suggestion_marker(self, gate, output, make_comment):
        gate.console.print(gate.render([make_comment(suggestion="rename()")]))

        assert "Suggestion available" in output.getvalue()
