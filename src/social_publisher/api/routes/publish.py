"""Immediate publish endpoint."""

from fastapi import APIRouter

from social_publisher.api.deps import CurrentUserDep, SessionDep, domain_errors, parse_uuid
from social_publisher.api.schemas import CamelModel, PostResponse, PublishBody
from social_publisher.logging import get_logger
from social_publisher.services.publishing import PublishDispatcher
from social_publisher.services.scheduling import publish_now

router = APIRouter(prefix="/publish", tags=["Publish"])
logger = get_logger(__name__)


class PublishResponse(CamelModel):
    success: bool
    post_url: str | None = None
    publish_type: str
    simulated: bool = False
    simulation_reason: str | None = None
    post: PostResponse


@router.post(
    "",
    response_model=PublishResponse,
    summary="Publish now",
    description=(
        "Publish a video to a connected account within the request. Failures return "
        "a typed error body; once a post record exists its id is included."
    ),
)
async def publish_video(
    body: PublishBody,
    user_id: CurrentUserDep,
    session: SessionDep,
) -> PublishResponse:
    account_id = parse_uuid(body.social_account_id, "account")
    video_id = parse_uuid(body.video_id, "video")

    with domain_errors():
        post, result = await publish_now(
            session,
            PublishDispatcher(),
            user_id,
            account_id,
            video_id,
            caption=body.caption,
            hashtags=body.hashtags,
            mode=body.publish_mode,
            options=body.platform_options,
        )

    logger.info(
        "publish_request_completed",
        post_id=str(post.id),
        status=post.status,
        simulated=result.simulated,
    )
    return PublishResponse(
        success=True,
        post_url=result.post_url,
        publish_type=result.publish_type.value,
        simulated=result.simulated,
        simulation_reason=result.simulation_reason,
        post=PostResponse.from_model(post),
    )
