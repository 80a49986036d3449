from __future__ import annotations
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from ...auth.deps import get_current_user
from ...config import get_settings
from ...db import get_db
from ...domain.schemas.email import ActivationOut, EmailIn, EmailOut, MessageOut, check_address
from ...models import User
from ...services.email_lifecycle import (
    EmailConfig, EmailError, EmailExists, EmailService, Forbidden, InvalidState, NotFound,
)
from ...services.mail import mail_service
from ...services.rate_limit import limit_activation_request, limit_activation_verify

router = APIRouter(prefix="/user", tags=["emails"])

S = get_settings()


def get_email_service(db: AsyncSession = Depends(get_db)) -> EmailService:
    return EmailService(db, mailer=mail_service, config=EmailConfig.from_settings(S))


def _http_error(exc: EmailError) -> HTTPException:
    if isinstance(exc, NotFound):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, Forbidden):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, (EmailExists, InvalidState)):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=exc.message)


@router.get("/emails", response_model=List[EmailOut])
async def list_emails(
    current: User = Depends(get_current_user),
    svc: EmailService = Depends(get_email_service),
):
    emails = await svc.get_emails_by_user_id(current.id)
    return [EmailOut.model_validate(e) for e in emails]


@router.post("/email", response_model=EmailOut, status_code=status.HTTP_201_CREATED)
async def add_email(
    payload: EmailIn,
    current: User = Depends(get_current_user),
    svc: EmailService = Depends(get_email_service),
):
    try:
        email = await svc.add_email(address=payload.email, user_id=current.id)
    except EmailError as e:
        raise _http_error(e)
    return EmailOut.model_validate(email)


@router.post("/email/activate/send", response_model=MessageOut, status_code=status.HTTP_202_ACCEPTED)
async def send_activation(
    payload: EmailIn,
    request: Request,
    current: User = Depends(get_current_user),
    svc: EmailService = Depends(get_email_service),
):
    await limit_activation_request(request)
    address = payload.email
    # only the owner may ask for a code for an address
    owned = {e.email for e in await svc.get_emails_by_user_id(current.id)}
    if address not in owned:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Email address not found.")
    try:
        await svc.send_activation_code(address)
    except EmailError as e:
        raise _http_error(e)
    return MessageOut(message="Activation email sent.")


@router.get("/email/activate", response_model=ActivationOut)
async def activate_email(
    request: Request,
    code: str = Query(..., min_length=1),
    email: str = Query(..., min_length=1),
    svc: EmailService = Depends(get_email_service),
):
    # reached from the link in the activation email; no session required
    await limit_activation_verify(request)
    try:
        check_address(email)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    try:
        result = await svc.activate_email(address=email, code=code)
    except EmailError as e:
        raise _http_error(e)
    if not result.ok:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired code")
    return ActivationOut(email=email, activated=True, result=result.value)


@router.post("/email/promote", response_model=MessageOut)
async def promote_email(
    payload: EmailIn,
    current: User = Depends(get_current_user),
    svc: EmailService = Depends(get_email_service),
):
    try:
        await svc.promote_email(address=payload.email, user_id=current.id)
    except EmailError as e:
        raise _http_error(e)
    return MessageOut(message="Primary email updated.")


@router.delete("/email", response_model=MessageOut)
async def delete_email(
    payload: EmailIn,
    current: User = Depends(get_current_user),
    svc: EmailService = Depends(get_email_service),
):
    try:
        await svc.delete_email(address=payload.email, user_id=current.id)
    except EmailError as e:
        raise _http_error(e)
    return MessageOut(message="Email deleted.")
