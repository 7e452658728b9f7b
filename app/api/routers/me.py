from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.deps import get_current_user
from app.api.schemas.me import MeResponse
from app.domain.entities.user import AuthProvider, User


router = APIRouter()


@router.get("/auth/me", response_model=MeResponse)
def get_me(current_user: User = Depends(get_current_user)):
    return MeResponse(
        id=current_user.id,
        email=current_user.email,
        name=current_user.display_name,
        avatar_url=current_user.avatar_url,
        is_verified=current_user.is_verified,
        providers=[provider.value for provider in AuthProvider if current_user.subject_for(provider)],
        created_at=current_user.created_at,
        last_login_at=current_user.last_login_at,
    )
