"""FastAPI dependencies."""

import hmac
from collections.abc import Generator
from contextlib import contextmanager
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from social_publisher.config import settings
from social_publisher.db.session import get_session
from social_publisher.domain.errors import (
    ConcurrentAttemptError,
    InvalidTransitionError,
    PostAccessDenied,
    PostNotFoundError,
    RetryNotAllowedError,
    SchedulingValidationError,
)
from social_publisher.services.accounts import AccountAccessDenied, AccountNotFoundError
from social_publisher.services.media import VideoNotFoundError

ADMIN_KEY_HEADER = "X-Admin-Key"

# Database session dependency
SessionDep = Annotated[Session, Depends(get_session)]


def get_current_user_id(request: Request) -> str:
    """Caller identity forwarded by the authenticating gateway."""
    user_id = (request.headers.get(settings.user_id_header) or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    return user_id


CurrentUserDep = Annotated[str, Depends(get_current_user_id)]


def parse_uuid(value: str, label: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {label} ID",
        )


def require_admin(request: Request) -> None:
    """Guard for admin endpoints; disabled entirely when no key is configured."""
    provided = request.headers.get(ADMIN_KEY_HEADER) or ""
    expected = settings.admin_api_key
    if not expected or not hmac.compare_digest(provided.encode(), expected.encode()):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )


AdminDep = Depends(require_admin)


@contextmanager
def domain_errors() -> Generator[None, None, None]:
    """Translate lookup and lifecycle errors into HTTP responses.

    PublishError is left alone; the application-level handler renders it.
    """
    try:
        yield
    except (AccountNotFoundError, VideoNotFoundError, PostNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except (AccountAccessDenied, PostAccessDenied):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    except SchedulingValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except RetryNotAllowedError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except (ConcurrentAttemptError, InvalidTransitionError) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
