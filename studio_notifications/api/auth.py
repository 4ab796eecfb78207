"""Authentication API routes: session credential refresh."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import select

from ..core import SessionDep, get_settings
from ..core.security import create_access_token, create_refresh_token, decode_token
from ..models import User
from ..schemas import RefreshRequest, TokenResponse

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    request: RefreshRequest,
    session: SessionDep,
):
    """Exchange a refresh token for a new access/refresh pair."""
    payload = decode_token(request.refresh_token)
    if not payload or payload.type != "refresh":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )

    try:
        user_id = UUID(payload.sub)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token subject",
        )

    result = await session.execute(select(User.id).where(User.id == user_id))
    if result.scalar_one_or_none() is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    return TokenResponse(
        access_token=create_access_token(user_id),
        refresh_token=create_refresh_token(user_id),
        expires_in=get_settings().access_token_expire_minutes * 60,
    )
