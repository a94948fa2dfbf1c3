# concerndesk/api/routes/auth.py
from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request, status

from concerndesk.api.deps import CurrentUser, DBDep, SettingsDep
from concerndesk.core.logging import log_extra
from concerndesk.schemas.auth import LoginIn, RegisterIn, TokenOut
from concerndesk.schemas.common import Envelope
from concerndesk.schemas.users import UserOut
from concerndesk.services.auth import authenticate, make_token_for_user, register_user

router = APIRouter()
log = logging.getLogger(__name__)


@router.post("/register", response_model=Envelope[TokenOut], status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterIn, request: Request, db: DBDep, settings: SettingsDep):
    user = await register_user(db, payload)
    log.info("user_registered", extra={**log_extra(request), "user_id": user.id})
    token = make_token_for_user(user, settings)
    return Envelope[TokenOut](
        message="User registered successfully",
        data=TokenOut(access_token=token, user=UserOut.model_validate(user)),
    )


@router.post("/login", response_model=Envelope[TokenOut])
async def login(payload: LoginIn, request: Request, db: DBDep, settings: SettingsDep):
    user = await authenticate(db, email=payload.email, password=payload.password)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account is deactivated")

    log.info("user_logged_in", extra={**log_extra(request), "user_id": user.id})
    token = make_token_for_user(user, settings)
    return Envelope[TokenOut](
        message="Login successful",
        data=TokenOut(access_token=token, user=UserOut.model_validate(user)),
    )


@router.get("/me", response_model=Envelope[UserOut])
async def me(current: CurrentUser):
    return Envelope[UserOut](data=UserOut.model_validate(current))
