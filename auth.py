import secrets
import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from pydantic import BaseModel
from fastapi import HTTPException, Depends, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from config import settings
from schemas import UserRole

security = HTTPBearer(auto_error=False)


class SessionContext(BaseModel):
    """Per-login state handed to every authenticated request."""
    token: str
    username: str
    role: UserRole
    wallet_address: Optional[str] = None
    expires_at: datetime


class AuthService:
    def __init__(self, password: str, ttl_minutes: int):
        # Demo accounts - in production, back this with a user table
        self.demo_users: Dict[str, UserRole] = {
            "beekeeper": UserRole.BEEKEEPER,
            "admin": UserRole.ADMIN,
        }
        self._password = password
        self._ttl = timedelta(minutes=ttl_minutes)
        self._sessions: Dict[str, SessionContext] = {}
        self._lock = threading.Lock()

    def authenticate_user(self, username: str, password: str) -> Optional[SessionContext]:
        """Check credentials and open a new session"""
        role = self.demo_users.get(username)
        if role is None or not secrets.compare_digest(password, self._password):
            return None

        now = datetime.now(timezone.utc)
        session = SessionContext(
            token=secrets.token_urlsafe(32),
            username=username,
            role=role,
            expires_at=now + self._ttl,
        )
        with self._lock:
            self._prune_expired(now)
            self._sessions[session.token] = session
        return session

    def _prune_expired(self, now: datetime) -> None:
        # Caller holds the lock
        expired = [token for token, s in self._sessions.items() if s.expires_at <= now]
        for token in expired:
            del self._sessions[token]

    def get_session(self, token: str) -> Optional[SessionContext]:
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            if session.expires_at <= datetime.now(timezone.utc):
                del self._sessions[token]
                return None
            return session

    def bind_wallet(self, token: str, wallet_address: Optional[str]) -> Optional[SessionContext]:
        """Attach (or with None, detach) a wallet address to the session"""
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            updated = session.model_copy(update={"wallet_address": wallet_address})
            self._sessions[token] = updated
            return updated

    def logout(self, token: str) -> bool:
        with self._lock:
            return self._sessions.pop(token, None) is not None


auth_service = AuthService(settings.DEMO_PASSWORD, settings.SESSION_TTL_MINUTES)


def get_auth_service() -> AuthService:
    return auth_service


def require_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    service: AuthService = Depends(get_auth_service),
) -> SessionContext:
    """Require authentication"""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )

    session = service.get_session(credentials.credentials)
    if not session:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session"
        )

    return session


def require_role(allowed_roles: List[UserRole]):
    """Require specific role(s)"""
    def role_checker(session: SessionContext = Depends(require_auth)) -> SessionContext:
        if session.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {[role.value for role in allowed_roles]}"
            )
        return session
    return role_checker


require_admin = require_role([UserRole.ADMIN])
require_beekeeper = require_role([UserRole.BEEKEEPER, UserRole.ADMIN])


def require_wallet(session: SessionContext = Depends(require_beekeeper)) -> SessionContext:
    """Beekeeper session that has a wallet connected"""
    if not session.wallet_address:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Please connect a wallet first"
        )
    return session
