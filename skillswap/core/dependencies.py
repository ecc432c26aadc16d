import logging
from abc import ABC, abstractmethod
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from skillswap.chat.service import ConversationService
from skillswap.connections.service import ConnectionReconciler
from skillswap.core import config
from skillswap.notifications.service import NotificationRelay


logger = logging.getLogger(__name__)
security = HTTPBearer(auto_error=False)


class IdentityProvider(ABC):
    @abstractmethod
    def current_caller_id(self) -> Optional[str]:
        """The authenticated caller's id, or None when there is no valid identity."""


class TokenIdentityProvider(IdentityProvider):
    """Identity taken from the `sub` claim of a Supabase-issued access token."""

    def __init__(self, token: Optional[str]):
        self.token = token

    def verify(self) -> dict:
        if not config.JWT_SIGN_KEY:
            raise RuntimeError("SUPABASE_JWT_SECRET is not set.")

        return jwt.decode(
            self.token,
            config.JWT_SIGN_KEY,
            algorithms=["HS256"],
            issuer=f"{config.SUPABASE_URL}/auth/v1",
            options={"verify_aud": False},
            leeway=60,
        )

    def current_caller_id(self) -> Optional[str]:
        if not self.token:
            return None

        try:
            payload = self.verify()
        except jwt.ExpiredSignatureError:
            logger.info("jwt_expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning(f"jwt_verification_failed error={e}")
            return None

        return payload.get("sub") or None


def get_identity_provider(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> IdentityProvider:
    return TokenIdentityProvider(credentials.credentials if credentials else None)


def get_current_user_id(
    identity: IdentityProvider = Depends(get_identity_provider),
) -> str:
    user_id = identity.current_caller_id()
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid or expired token.")
    return user_id


def get_websocket_user_id(token: Optional[str] = Query(default=None)) -> Optional[str]:
    """Browsers cannot set headers on a WebSocket handshake, so the token comes as `?token=`."""
    return TokenIdentityProvider(token).current_caller_id()


def get_reconciler(request: Request) -> ConnectionReconciler:
    return request.app.state.reconciler


def get_relay(request: Request) -> NotificationRelay:
    return request.app.state.relay


def get_conversations(request: Request) -> ConversationService:
    return request.app.state.conversations
