from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.auth import Principal, get_current_principal
from app.config import settings
from app.db import get_db
from app.dependencies import get_client_ip
from app.models import User
from app.schemas import LoginIn, UserOut
from app.security.passwords import check_password
from app.security.sessions import create_web_session, revoke_web_session
from app.services.audit_service import log_audit

router = APIRouter(prefix='/api/auth', tags=['auth'])
logger = logging.getLogger(__name__)


@router.post('/login', response_model=UserOut)
def login(
    body: LoginIn,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    email = body.email.strip().lower()
    ip = get_client_ip(request)

    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if not user or not user.active:
        logger.warning('Failed login for %s: %s', email, 'unknown user' if not user else 'inactive')
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid email or password')

    valid, updated_hash = check_password(body.password, user.password_hash)
    if not valid:
        logger.warning('Failed login for %s: bad password', email)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid email or password')
    if updated_hash:
        user.password_hash = updated_hash

    token = create_web_session(db, user.id, ip=ip, user_agent=request.headers.get('user-agent'))
    log_audit(
        db,
        actor_user_id=user.id,
        action='AUTH_LOGIN',
        entity_type='user',
        entity_id=user.id,
        ip=ip,
    )
    db.commit()
    logger.info('User %s logged in', user.id)

    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        max_age=settings.session_ttl_minutes * 60,
    )
    return UserOut.model_validate(user)


@router.post('/logout', status_code=status.HTTP_204_NO_CONTENT)
def logout(request: Request, db: Session = Depends(get_db)):
    principal = getattr(request.state, 'principal', None)
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        revoke_web_session(db, token)

    log_audit(
        db,
        actor_user_id=principal.id if principal else None,
        action='AUTH_LOGOUT',
        ip=get_client_ip(request),
    )
    db.commit()

    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie(settings.session_cookie_name)
    return response


@router.get('/me', response_model=UserOut)
def me(principal: Principal = Depends(get_current_principal)):
    return UserOut(id=principal.id, name=principal.name, email=principal.email, role=principal.role.value)
