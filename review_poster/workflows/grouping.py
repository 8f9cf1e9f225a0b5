"""Grouping of draft review comments into discussion threads."""

from review_poster.models import CommentThread, ReviewComment, ThreadComment, ThreadStatus

COMMENT_SEPARATOR = "\n\n---\n\n"
SUGGESTION_LABEL = "\n\n**Suggestion:**\n"


def thread_key(comment: ReviewComment) -> str:
    """Grouping key of a comment: ``file:line``."""
    return f"{comment.file_name}:{comment.line_number}"


def format_comment_body(comment: ReviewComment) -> str:
    """Comment content plus a labelled suggestion block when present."""
    body = comment.content
    if comment.suggestion:
        body += f"{SUGGESTION_LABEL}{comment.suggestion}"
    return body


def group_comments_into_threads(comments: list[ReviewComment]) -> list[CommentThread]:
    """Fold comments sharing a file and line into one thread each.

    Threads come out in the order their key was first seen, so the same input
    order always yields the same threads in the same order.

    Args:
        comments: Draft comments in any order

    Returns:
        One active thread per distinct (file, line) with a single combined body
    """
    groups: dict[str, list[ReviewComment]] = {}
    for comment in comments:
        groups.setdefault(thread_key(comment), []).append(comment)

    threads = []
    for group in groups.values():
        anchor = group[0]
        combined = COMMENT_SEPARATOR.join(format_comment_body(c) for c in group)
        threads.append(
            CommentThread(
                file_path=anchor.file_name,
                line=anchor.line_number,
                status=ThreadStatus.ACTIVE,
                comments=[ThreadComment(content=combined)],
                source_comments=list(group),
            )
        )

    return threads
