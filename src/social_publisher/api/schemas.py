"""Request and response models shared by several routers.

The HTTP surface speaks camelCase; models accept either spelling on input.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from social_publisher.db.models import ScheduledPostModel
from social_publisher.domain.enums import PublishMode
from social_publisher.utils.clock import ensure_utc


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PublishTarget(CamelModel):
    """Fields common to publish and schedule requests."""

    social_account_id: str = Field(..., description="Connected account UUID")
    video_id: str = Field(..., description="Video UUID")
    caption: str | None = Field(default=None, max_length=5000)
    hashtags: list[str] = Field(default_factory=list)


class PublishBody(PublishTarget):
    publish_mode: PublishMode = Field(default=PublishMode.DIRECT_POST)
    platform_options: dict[str, Any] = Field(default_factory=dict)


class ScheduleBody(PublishTarget):
    scheduled_for: datetime = Field(..., description="ISO 8601 timestamp in the future")


class PostResponse(CamelModel):
    id: str
    social_account_id: str
    video_id: str
    platform: str | None = None
    caption: str | None = None
    hashtags: list[str] = Field(default_factory=list)
    scheduled_for: datetime
    status: str
    post_url: str | None = None
    external_post_id: str | None = None
    failure_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, post: ScheduledPostModel) -> "PostResponse":
        account = post.social_account
        return cls(
            id=str(post.id),
            social_account_id=str(post.social_account_id),
            video_id=str(post.video_id),
            platform=account.platform if account is not None else None,
            caption=post.caption,
            hashtags=list(post.hashtags or []),
            scheduled_for=ensure_utc(post.scheduled_for),
            status=post.status,
            post_url=post.post_url,
            external_post_id=post.external_post_id,
            failure_reason=post.failure_reason,
            created_at=ensure_utc(post.created_at),
            updated_at=ensure_utc(post.updated_at),
        )
