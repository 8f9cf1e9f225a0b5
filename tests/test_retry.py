"""Tests for retrying thread posts."""

import pytest

from review_poster.cancellation import CancellationTokenSource, WorkflowCancelledError
from review_poster.integrations.base import ReviewClientError
from review_poster.workflows.grouping import group_comments_into_threads
from review_poster.workflows.retry import (
    NonRetryablePostingError,
    RetryCoordinator,
    TransientPostingError,
    is_retryable,
)


@pytest.fixture
def thread(make_comment):
    return group_comments_into_threads([make_comment("src/app.ts", 7)])[0]


def make_coordinator(client, sleep, **kwargs):
    kwargs.setdefault("jitter", lambda low, high: 0.0)
    return RetryCoordinator(client, sleep=sleep, **kwargs)


class TestIsRetryable:
    """Test failure classification."""

    @pytest.mark.parametrize("status", [401, 403, 404])
    def test_status_code_attribute_not_retryable(self, status):
        assert not is_retryable(ReviewClientError("denied", status_code=status))

    @pytest.mark.parametrize("status", [429, 500, 502, 503])
    def test_transient_status_retryable(self, status):
        assert is_retryable(ReviewClientError("busy", status_code=status))

    @pytest.mark.parametrize(
        "message",
        ["HTTP 401 Unauthorized", "Request failed with status 403", "404 not found"],
    )
    def test_status_in_message_not_retryable(self, message):
        assert not is_retryable(RuntimeError(message))

    def test_plain_error_retryable(self):
        assert is_retryable(ConnectionError("connection reset"))

    def test_attribute_wins_over_message(self):
        assert is_retryable(ReviewClientError("proxy said 404", status_code=503))


class TestRetryCoordinator:
    """Test RetryCoordinator.post_with_retry."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self, fake_client, recording_sleep, thread):
        coordinator = make_coordinator(fake_client, recording_sleep)

        created = await coordinator.post_with_retry("Proj", "repo-1", 42, thread)

        assert created.id == 101
        assert fake_client.attempts_for("src/app.ts") == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_auth_failure_attempted_once(self, fake_client, recording_sleep, thread):
        fake_client.fail_always("src/app.ts", ReviewClientError("unauthorized", status_code=401))
        coordinator = make_coordinator(fake_client, recording_sleep, max_retries=5)

        with pytest.raises(NonRetryablePostingError) as exc_info:
            await coordinator.post_with_retry("Proj", "repo-1", 42, thread)

        assert fake_client.attempts_for("src/app.ts") == 1
        assert exc_info.value.attempts == 1
        assert exc_info.value.status_code == 401
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_transient_failure_uses_every_attempt(self, fake_client, recording_sleep, thread):
        fake_client.fail_always("src/app.ts", ReviewClientError("service busy", status_code=503))
        coordinator = make_coordinator(
            fake_client, recording_sleep, max_retries=4, base_delay=0.5, max_jitter=0.25,
            jitter=lambda low, high: high,
        )

        with pytest.raises(TransientPostingError) as exc_info:
            await coordinator.post_with_retry("Proj", "repo-1", 42, thread)

        assert fake_client.attempts_for("src/app.ts") == 4
        assert exc_info.value.attempts == 4
        assert "service busy" in str(exc_info.value)
        # No pause after the final attempt
        assert len(recording_sleep.delays) == 3
        for attempt, delay in enumerate(recording_sleep.delays):
            assert delay >= 0.5 * 2 ** attempt
        assert recording_sleep.delays == [0.75, 1.25, 2.25]

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self, fake_client, recording_sleep, thread):
        fake_client.fail_once(
            "src/app.ts", ConnectionError("reset"), ReviewClientError("busy", status_code=429)
        )
        coordinator = make_coordinator(fake_client, recording_sleep, max_retries=3)

        created = await coordinator.post_with_retry("Proj", "repo-1", 42, thread)

        assert created.id == 101
        assert fake_client.attempts_for("src/app.ts") == 3
        assert len(recording_sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_per_call_overrides(self, fake_client, recording_sleep, thread):
        fake_client.fail_always("src/app.ts", ConnectionError("down"))
        coordinator = make_coordinator(fake_client, recording_sleep, max_retries=5)

        with pytest.raises(TransientPostingError):
            await coordinator.post_with_retry(
                "Proj", "repo-1", 42, thread, max_retries=2, base_delay=3.0
            )

        assert fake_client.attempts_for("src/app.ts") == 2
        assert recording_sleep.delays == [3.0]

    @pytest.mark.asyncio
    async def test_cancelled_during_backoff(self, fake_client, recording_sleep, thread):
        fake_client.fail_always("src/app.ts", ConnectionError("down"))
        source = CancellationTokenSource()
        recording_sleep.on_sleep = lambda count: source.cancel()
        coordinator = make_coordinator(fake_client, recording_sleep, max_retries=5)

        with pytest.raises(WorkflowCancelledError):
            await coordinator.post_with_retry(
                "Proj", "repo-1", 42, thread, cancellation_token=source.token
            )

        assert fake_client.attempts_for("src/app.ts") == 1

    def test_backoff_delay(self, fake_client, recording_sleep):
        coordinator = make_coordinator(
            fake_client, recording_sleep, base_delay=1.0, max_jitter=1.0,
            jitter=lambda low, high: 0.5,
        )
        assert coordinator.backoff_delay(0) == 1.5
        assert coordinator.backoff_delay(2) == 4.5
        assert coordinator.backoff_delay(1, base_delay=0.1) == pytest.approx(0.7)

    def test_rejects_zero_retries(self, fake_client):
        with pytest.raises(ValueError):
            RetryCoordinator(fake_client, max_retries=0)
