"""Authentication helpers integrating AWS Cognito JWTs.

Cognito hosts both sign-in methods (Google federation and username/password);
either way the client ends up with a Cognito ID token. ``get_current_user``:
1. Extracts the ``Authorization: Bearer <id_token>`` header.
2. Downloads / caches the JSON Web Key Set (JWKS) for the Cognito User Pool.
3. Verifies signature, expiration, audience and issuer.
4. Creates or fetches the ``models.User`` row on-the-fly.

With ``AUTH_BILLING_ENABLED=false`` (local development) every request is served
as a fixed local user instead.
"""
from __future__ import annotations

import time
from functools import lru_cache
from typing import Annotated, Optional

import httpx
import structlog
from fastapi import Depends, Request
from jose import JWTError, jwt
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import crud
import models
import schemas
from database import get_db
from errors import UnauthorizedError
from settings import get_settings

logger = structlog.get_logger(__name__)

LOCAL_USER_EMAIL = "local@example.com"


class TokenPayload(BaseModel):
    sub: str
    email: Optional[str] = None
    name: Optional[str] = None
    exp: int
    aud: str


class AuthSettings(BaseModel):
    region: str
    user_pool_id: str
    client_id: str

    @property
    def issuer(self) -> str:  # cognito issuer URL
        return f"https://cognito-idp.{self.region}.amazonaws.com/{self.user_pool_id}"

    @property
    def jwks_url(self) -> str:
        return f"{self.issuer}/.well-known/jwks.json"


@lru_cache
def _load_settings() -> AuthSettings:
    settings = get_settings()
    if not settings.cognito_user_pool_id or not settings.cognito_app_client_id:
        raise RuntimeError("Cognito is not configured: set COGNITO_USER_POOL_ID and COGNITO_APP_CLIENT_ID")
    return AuthSettings(
        region=settings.aws_region or "us-east-1",
        user_pool_id=settings.cognito_user_pool_id,
        client_id=settings.cognito_app_client_id,
    )


@lru_cache
def _get_jwks():
    settings = _load_settings()
    logger.info("Fetching JWKS", jwks_url=settings.jwks_url)
    resp = httpx.get(settings.jwks_url, timeout=10)
    resp.raise_for_status()
    return resp.json()


def verify_token(token: str) -> TokenPayload:
    """Verify a Cognito ID token and return its payload.

    Raises UnauthorizedError on any verification failure.
    """
    if not get_settings().auth_billing_enabled:
        return TokenPayload(
            sub="local-dev",
            email=LOCAL_USER_EMAIL,
            name="Local User",
            exp=int(time.time()) + 3600,
            aud="local",
        )

    settings = _load_settings()
    jwks = _get_jwks()
    try:
        payload = jwt.decode(
            token,
            jwks,
            algorithms=["RS256"],
            audience=settings.client_id,
            issuer=settings.issuer,
            options={"verify_at_hash": False},
        )
        return TokenPayload.model_validate(payload)
    except JWTError as exc:
        logger.warning("JWT verification failed", exc=str(exc))
        raise UnauthorizedError("Invalid token")


def _get_authorization_header(request: Request) -> Optional[str]:
    return request.headers.get("Authorization")


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    return authorization.split(" ", 1)[1].strip() or None


def _upsert_user(db: Session, payload: TokenPayload) -> models.User:
    """Fetch the user for a token's ``sub``, creating the row on first sign-in."""
    email = payload.email or payload.sub
    user = crud.get_user_by_cognito_sub(db, payload.sub)
    if user:
        if user.email != email:
            user.email = email
            try:
                db.commit()
            except IntegrityError:
                # Another account already holds this email; keep the stored one
                db.rollback()
                logger.warning("Email change conflicts with another user", user_id=user.id)
        return user

    try:
        user = crud.create_user(
            db, schemas.UserCreate(email=email, name=payload.name, cognito_sub=payload.sub)
        )
        db.commit()
    except IntegrityError:
        # Concurrent first sign-in inserted the row already
        db.rollback()
        user = crud.get_user_by_cognito_sub(db, payload.sub)
        if user is None:
            logger.warning("Email already registered to another identity", sub=payload.sub)
            raise UnauthorizedError("Account conflict")
        return user
    logger.info("Created user from token", user_id=user.id)
    return user


# --- FastAPI dependencies ---
async def get_optional_user(
    authorization: Annotated[Optional[str], Depends(_get_authorization_header)],
    db: Session = Depends(get_db),
) -> Optional[models.User]:
    """Resolve the caller, or None when there is no valid session."""
    if not get_settings().auth_billing_enabled:
        return _upsert_user(db, verify_token(""))

    token = _bearer_token(authorization)
    if token is None:
        return None
    try:
        payload = verify_token(token)
    except UnauthorizedError:
        return None
    return _upsert_user(db, payload)


async def get_current_user(
    user: Annotated[Optional[models.User], Depends(get_optional_user)],
) -> models.User:
    if user is None:
        raise UnauthorizedError()
    return user
