from fastapi import APIRouter, Depends, HTTPException

from trudify.auth import Actor, create_access_token, require_actor
from trudify.dependencies import ServiceContainer, get_services
from trudify.models import AuthLoginRequest, AuthLoginResponse, AuthMeResponse

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=AuthLoginResponse)
def login(payload: AuthLoginRequest, services: ServiceContainer = Depends(get_services)):
    user_id = payload.user_id.strip()
    if not user_id:
        raise HTTPException(status_code=400, detail={"error": "userId is required", "code": "validation_error"})
    if payload.password != services.settings.auth_demo_password or services.db.get_user(user_id) is None:
        raise HTTPException(status_code=401, detail={"error": "Invalid credentials", "code": "unauthorized"})
    token, expires_in = create_access_token(
        user_id,
        services.settings.auth_secret,
        services.settings.auth_token_ttl_hours,
    )
    return AuthLoginResponse(access_token=token, expires_in=expires_in, user_id=user_id)


@router.get("/me", response_model=AuthMeResponse)
def me(actor: Actor = Depends(require_actor)):
    return AuthMeResponse(user_id=actor.user_id, auth_method=actor.auth_method)
