"""Social account storage and token lifecycle.

Tokens are encrypted before every write and only decrypted at the point
of use. Refresh is serialized per account so concurrent publishers never
spend the same refresh token twice.
"""

import logging
import threading
import weakref
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from social_publisher.db.models import SocialAccountModel
from social_publisher.domain.enums import Platform
from social_publisher.domain.errors import ReauthorizationRequired
from social_publisher.domain.models import AccountSummary, is_limited_account_name
from social_publisher.services.encryption import (
    decrypt_token,
    encrypt_optional,
    encrypt_token,
)
from social_publisher.services.token_exchange import TokenExchangeClient, TokenExchangeError
from social_publisher.utils.clock import ensure_utc, utcnow

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 3600

# Entries drop out once no caller holds the lock
_refresh_locks: weakref.WeakValueDictionary[UUID, threading.Lock] = (
    weakref.WeakValueDictionary()
)
_refresh_locks_guard = threading.Lock()


class AccountNotFoundError(Exception):
    """Raised when an account is not found."""

    pass


class AccountAccessDenied(Exception):
    """Raised when a user acts on an account they do not own."""

    pass


def _refresh_lock(account_id: UUID) -> threading.Lock:
    with _refresh_locks_guard:
        lock = _refresh_locks.get(account_id)
        if lock is None:
            lock = _refresh_locks[account_id] = threading.Lock()
        return lock


def to_summary(account: SocialAccountModel) -> AccountSummary:
    return AccountSummary(
        id=account.id,
        platform=Platform(account.platform),
        account_name=account.account_name,
        is_active=account.is_active,
        limited_access=is_limited_account_name(account.account_name),
        token_expires_at=ensure_utc(account.token_expires_at),
        created_at=account.created_at,
        updated_at=account.updated_at,
    )


def list_accounts(session: Session, user_id: str) -> list[AccountSummary]:
    """List a user's active accounts, newest first. Never includes tokens."""
    query = (
        select(SocialAccountModel)
        .where(
            SocialAccountModel.user_id == user_id,
            SocialAccountModel.is_active.is_(True),
        )
        .order_by(SocialAccountModel.created_at.desc())
    )
    return [to_summary(account) for account in session.execute(query).scalars()]


def get_owned_account(
    session: Session,
    account_id: UUID,
    user_id: str,
) -> SocialAccountModel:
    """Load an account and verify ownership.

    Raises:
        AccountNotFoundError: If no account has this id.
        AccountAccessDenied: If the account belongs to another user.
    """
    account = session.get(SocialAccountModel, account_id)
    if account is None:
        raise AccountNotFoundError(f"No account found with ID '{account_id}'")
    if account.user_id != user_id:
        raise AccountAccessDenied(f"Account '{account_id}' belongs to another user")
    return account


def expiry_from(expires_in: int | None, now: datetime | None = None) -> datetime:
    return (now or utcnow()) + timedelta(seconds=expires_in or DEFAULT_EXPIRES_IN)


def upsert_account(
    session: Session,
    user_id: str,
    platform: Platform | str,
    account_name: str,
    access_token: str,
    refresh_token: str | None = None,
    expires_at: datetime | None = None,
) -> SocialAccountModel:
    """Insert or update the account for (user, platform, account name).

    An existing record gets its tokens overwritten and is reactivated.
    """
    platform = Platform(platform)
    account = session.execute(
        select(SocialAccountModel).where(
            SocialAccountModel.user_id == user_id,
            SocialAccountModel.platform == platform.value,
            SocialAccountModel.account_name == account_name,
        )
    ).scalar_one_or_none()

    if account is None:
        account = SocialAccountModel(
            user_id=user_id,
            platform=platform.value,
            account_name=account_name,
        )
        session.add(account)
        logger.info(f"Connecting new {platform.value} account '{account_name}' for user {user_id}")
    else:
        logger.info(f"Reconnecting {platform.value} account '{account_name}' ({account.id})")

    account.encrypted_access_token = encrypt_token(access_token)
    account.encrypted_refresh_token = encrypt_optional(refresh_token)
    account.token_expires_at = expires_at
    account.is_active = True
    session.flush()
    return account


def deactivate_account(
    session: Session,
    account_id: UUID,
    requesting_user_id: str,
) -> SocialAccountModel:
    """Soft-delete an account on user request. Publish history is kept."""
    account = get_owned_account(session, account_id, requesting_user_id)
    account.is_active = False
    session.flush()
    logger.info(f"Deactivated {account.platform} account '{account.account_name}' ({account.id})")
    return account


def is_token_expired(account: SocialAccountModel, now: datetime | None = None) -> bool:
    """An absent expiry counts as expired."""
    expires_at = ensure_utc(account.token_expires_at)
    return expires_at is None or expires_at <= (now or utcnow())


def needs_refresh(account: SocialAccountModel, now: datetime | None = None) -> bool:
    return bool(account.encrypted_refresh_token) and is_token_expired(account, now)


def refresh_account_token(
    session: Session,
    account: SocialAccountModel,
    client: TokenExchangeClient,
) -> SocialAccountModel:
    """Refresh the account's tokens if they are expired.

    A no-op (no network call, no write) when the token is still valid or
    there is no refresh token. Holding the per-account lock, the row is
    re-read so a refresh completed by another caller is observed instead of
    repeated. A failed refresh deactivates the account and is committed
    before ReauthorizationRequired is raised.

    Raises:
        ReauthorizationRequired: If the platform rejects the refresh.
    """
    if not needs_refresh(account):
        return account

    with _refresh_lock(account.id):
        session.refresh(account, with_for_update=True)
        if not needs_refresh(account):
            logger.info(f"Token for account {account.id} already refreshed by another request")
            return account

        refresh_token = decrypt_token(account.encrypted_refresh_token)
        try:
            result = client.refresh(account.platform, refresh_token)
        except TokenExchangeError as e:
            account.is_active = False
            session.commit()
            logger.warning(
                f"Token refresh failed for {account.platform} account {account.id}; "
                f"account deactivated: {e}"
            )
            raise ReauthorizationRequired(str(e)) from e

        account.encrypted_access_token = encrypt_token(result.access_token)
        account.encrypted_refresh_token = encrypt_optional(result.refresh_token or refresh_token)
        account.token_expires_at = expiry_from(result.expires_in)
        session.commit()
        logger.info(f"Refreshed token for {account.platform} account {account.id}")
        return account


def get_access_token(
    session: Session,
    account: SocialAccountModel,
    client: TokenExchangeClient,
) -> str:
    """Plaintext access token for an upload, refreshing first if needed.

    Raises:
        ReauthorizationRequired: If the account is inactive, its refresh
            failed, or the token expired with no way to renew it.
    """
    if not account.is_active:
        raise ReauthorizationRequired("Account is disconnected")

    refresh_account_token(session, account, client)

    if account.token_expires_at is not None and is_token_expired(account):
        raise ReauthorizationRequired("Access token expired and no refresh token is stored")

    return decrypt_token(account.encrypted_access_token)
