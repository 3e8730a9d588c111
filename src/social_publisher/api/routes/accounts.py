"""Connected social account endpoints."""

from datetime import datetime

from fastapi import APIRouter, HTTPException, status
from pydantic import Field
from sqlalchemy.exc import IntegrityError

from social_publisher.api.deps import CurrentUserDep, SessionDep, parse_uuid
from social_publisher.api.schemas import CamelModel
from social_publisher.domain.enums import Platform
from social_publisher.domain.models import AccountSummary
from social_publisher.logging import get_logger
from social_publisher.services.accounts import (
    AccountAccessDenied,
    AccountNotFoundError,
    deactivate_account,
    list_accounts,
    to_summary,
    upsert_account,
)
from social_publisher.utils.clock import ensure_utc

router = APIRouter(prefix="/accounts", tags=["Accounts"])
logger = get_logger(__name__)


class AccountResponse(CamelModel):
    """Account details. Tokens are never returned."""

    id: str
    platform: str
    account_name: str
    is_active: bool
    limited_access: bool
    token_expires_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_summary(cls, summary: AccountSummary) -> "AccountResponse":
        return cls(
            id=str(summary.id),
            platform=summary.platform.value,
            account_name=summary.account_name,
            is_active=summary.is_active,
            limited_access=summary.limited_access,
            token_expires_at=summary.token_expires_at,
            created_at=ensure_utc(summary.created_at),
        )


class AccountListResponse(CamelModel):
    accounts: list[AccountResponse]
    total: int


class AddAccountRequest(CamelModel):
    """Manually register an account whose tokens were obtained elsewhere."""

    platform: Platform
    account_name: str = Field(..., min_length=1, max_length=255)
    access_token: str = Field(..., min_length=1)
    refresh_token: str | None = None
    token_expires_at: datetime | None = None


@router.get(
    "",
    response_model=AccountListResponse,
    summary="List accounts",
    description="List the caller's active connected accounts.",
)
def list_social_accounts(user_id: CurrentUserDep, session: SessionDep) -> AccountListResponse:
    accounts = list_accounts(session, user_id)
    return AccountListResponse(
        accounts=[AccountResponse.from_summary(account) for account in accounts],
        total=len(accounts),
    )


@router.post(
    "",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add account",
    description="Register an account with tokens obtained outside the OAuth flow.",
)
def add_social_account(
    request: AddAccountRequest,
    user_id: CurrentUserDep,
    session: SessionDep,
) -> AccountResponse:
    try:
        account = upsert_account(
            session,
            user_id=user_id,
            platform=request.platform,
            account_name=request.account_name.strip(),
            access_token=request.access_token,
            refresh_token=request.refresh_token,
            expires_at=ensure_utc(request.token_expires_at),
        )
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Account already exists",
        )

    logger.info("account_added", platform=request.platform.value, account_id=str(account.id))
    return AccountResponse.from_summary(to_summary(account))


@router.delete(
    "/{account_id}",
    summary="Disconnect account",
    description="Deactivate an account. Its publish history is kept.",
)
def delete_social_account(
    account_id: str,
    user_id: CurrentUserDep,
    session: SessionDep,
) -> dict[str, bool]:
    account_uuid = parse_uuid(account_id, "account")
    try:
        deactivate_account(session, account_uuid, user_id)
    except AccountNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    except AccountAccessDenied:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    session.commit()
    return {"success": True}
