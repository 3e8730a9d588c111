"""Tests for background publish tasks."""

from datetime import timedelta
from unittest.mock import patch
from uuid import uuid4

import pytest
from conftest import FakePublisher

from social_publisher.jobs.publish_tasks import process_due_posts_task, retry_publish_task
from social_publisher.utils.clock import utcnow


@pytest.fixture
def fake_get_publisher():
    publisher = FakePublisher()
    with patch(
        "social_publisher.services.publishing.get_publisher",
        side_effect=lambda platform, config=None: publisher,
    ):
        yield publisher


class TestRetryPublishTask:
    """Test the retry task end to end with eager execution."""

    def test_publishes_claimed_post(self, make_account, make_video, make_post, fake_get_publisher):
        post = make_post(make_account(), make_video(), status="PROCESSING")

        result = retry_publish_task.apply(args=[str(post.id)]).get()

        assert result["success"] is True
        assert result["status"] == "PUBLISHED"
        assert result["post_url"] == "https://www.tiktok.com/@creator/video/post-123"

    def test_missing_file_ends_failed(self, make_account, make_video, make_post, fake_get_publisher):
        """Test a file deleted after the claim still gets a terminal write."""
        post = make_post(make_account(), make_video(write_file=False), status="PROCESSING")

        result = retry_publish_task.apply(args=[str(post.id)]).get()

        assert result["success"] is False
        assert result["status"] == "FAILED"
        assert result["failure_reason"].startswith("Video file not found")
        assert fake_get_publisher.requests == []

    def test_revoked_account_ends_failed(
        self, make_account, make_video, make_post, fake_get_publisher
    ):
        post = make_post(make_account(is_active=False), make_video(), status="PROCESSING")

        result = retry_publish_task.apply(args=[str(post.id)]).get()

        assert result["status"] == "FAILED"
        assert result["failure_reason"].startswith("Account authorization expired")

    def test_unknown_post(self, fake_get_publisher):
        post_id = str(uuid4())

        result = retry_publish_task.apply(args=[post_id]).get()

        assert result == {"success": False, "post_id": post_id, "status": None}


class TestProcessDuePostsTask:
    """Test the due-post sweep with eager execution."""

    def test_publishes_only_due_posts(
        self, make_account, make_video, make_post, fake_get_publisher
    ):
        account, video = make_account(), make_video()
        due = make_post(account, video, scheduled_for=utcnow() - timedelta(minutes=1))
        make_post(account, video, scheduled_for=utcnow() + timedelta(hours=1))

        result = process_due_posts_task.apply().get()

        assert result["processed"] == 1
        assert result["results"][0]["post_id"] == str(due.id)
        assert result["results"][0]["status"] == "PUBLISHED"

    def test_nothing_due(self, fake_get_publisher):
        result = process_due_posts_task.apply().get()

        assert result == {"processed": 0, "results": []}
