"""OAuth connection endpoints."""

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import RedirectResponse

from social_publisher.api.deps import CurrentUserDep, SessionDep
from social_publisher.config import settings
from social_publisher.domain.enums import Platform
from social_publisher.logging import get_logger
from social_publisher.services.oauth_flow import AuthorizationFlowController, FlowResult

router = APIRouter(prefix="/oauth", tags=["OAuth"])
logger = get_logger(__name__)


def _to_response(result: FlowResult) -> RedirectResponse:
    response = RedirectResponse(result.redirect_url, status_code=status.HTTP_302_FOUND)
    for cookie in result.set_cookies:
        response.set_cookie(
            cookie.name,
            cookie.value,
            max_age=cookie.max_age,
            path=cookie.path,
            httponly=True,
            samesite="lax",
            secure=settings.environment == "production",
        )
    for name in result.clear_cookies:
        response.delete_cookie(name, path=result.cookie_path)
    return response


@router.get(
    "/authorize/{platform}",
    summary="Start account connection",
    description="Redirects to the platform consent screen.",
)
def authorize(platform: Platform, user_id: CurrentUserDep, session: SessionDep) -> RedirectResponse:
    controller = AuthorizationFlowController(session)
    try:
        result = controller.start_authorization(user_id, platform)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _to_response(result)


@router.get(
    "/callback/{platform}",
    summary="OAuth callback",
    description="Platform redirect target. Always redirects back to the accounts page.",
)
def callback(platform: Platform, request: Request, session: SessionDep) -> RedirectResponse:
    controller = AuthorizationFlowController(session)
    result = controller.handle_callback(
        platform,
        dict(request.query_params),
        dict(request.cookies),
    )
    return _to_response(result)
