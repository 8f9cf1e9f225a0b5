"""Tests for grouping review comments into threads."""

import pytest

from review_poster.models import ThreadStatus
from review_poster.workflows.grouping import (
    COMMENT_SEPARATOR,
    format_comment_body,
    group_comments_into_threads,
    thread_key,
)


class TestGroupCommentsIntoThreads:
    """Test thread grouping."""

    def test_same_location_is_combined(self, make_comment):
        comments = [
            make_comment("a.ts", 10, "Fix X"),
            make_comment("a.ts", 10, "Also fix Y"),
            make_comment("b.ts", 1, "Z"),
        ]

        threads = group_comments_into_threads(comments)

        assert len(threads) == 2
        first, second = threads
        assert (first.file_path, first.line) == ("a.ts", 10)
        assert len(first.comments) == 1
        assert "Fix X" in first.comments[0].content
        assert "Also fix Y" in first.comments[0].content
        assert first.comments[0].content == f"Fix X{COMMENT_SEPARATOR}Also fix Y"
        assert (second.file_path, second.line) == ("b.ts", 1)
        assert second.comments[0].content == "Z"

    def test_threads_are_active(self, make_comment):
        threads = group_comments_into_threads([make_comment()])
        assert threads[0].status == ThreadStatus.ACTIVE

    def test_first_seen_order(self, make_comment):
        comments = [
            make_comment("z.py", 5),
            make_comment("a.py", 1),
            make_comment("z.py", 5),
            make_comment("m.py", 3),
        ]

        threads = group_comments_into_threads(comments)

        assert [thread_key_of(t) for t in threads] == ["z.py:5", "a.py:1", "m.py:3"]

    def test_same_file_different_lines_are_separate(self, make_comment):
        threads = group_comments_into_threads(
            [make_comment("a.py", 1), make_comment("a.py", 2)]
        )
        assert len(threads) == 2

    def test_deterministic(self, make_comment):
        comments = [make_comment(f"f{i % 3}.py", i % 2 + 1, f"c{i}") for i in range(10)]

        first = group_comments_into_threads(comments)
        second = group_comments_into_threads(comments)

        assert [t.model_dump() for t in first] == [t.model_dump() for t in second]

    def test_every_comment_lands_in_one_thread(self, make_comment):
        comments = [make_comment(f"f{i % 4}.py", i % 3 + 1, f"c{i}") for i in range(17)]

        threads = group_comments_into_threads(comments)

        assert sum(len(t.source_comments) for t in threads) == len(comments)

    def test_empty_input(self):
        assert group_comments_into_threads([]) == []

    def test_source_comments_not_serialised(self, make_comment):
        thread = group_comments_into_threads([make_comment()])[0]
        assert "source_comments" not in thread.model_dump()


class TestFormatCommentBody:
    """Test comment body formatting."""

    def test_plain_content(self, make_comment):
        assert format_comment_body(make_comment(content="Looks off")) == "Looks off"

    def test_suggestion_is_labelled(self, make_comment):
        body = format_comment_body(make_comment(content="Use const", suggestion="const x = 1;"))
        assert body == "Use const\n\n**Suggestion:**\nconst x = 1;"

    @pytest.mark.parametrize("suggestion", [None, ""])
    def test_empty_suggestion_is_ignored(self, make_comment, suggestion):
        body = format_comment_body(make_comment(content="Hmm", suggestion=suggestion))
        assert body == "Hmm"


def thread_key_of(thread):
    return f"{thread.file_path}:{thread.line}"


def test_thread_key(make_comment):
    assert thread_key(make_comment("src/a.ts", 12)) == "src/a.ts:12"
