"""Registration wizard: start, read, step (next / prev / complete), restart, shared rules."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from liftingtracker.api.deps import get_draft_token, verify_draft_csrf
from liftingtracker.api.v1.auth import token_response
from liftingtracker.config import settings
from liftingtracker.core.auth import draft_csrf_scope, make_csrf_token
from liftingtracker.core.errors import PermissionDeniedError, ValidationError
from liftingtracker.db.session import get_db
from liftingtracker.services.audit import client_ip, log_action
from liftingtracker.services.identity import create_account, issue_tokens
from liftingtracker.services.registration import (
    TOTAL_STEPS,
    RegistrationWizard,
    discard_draft,
    load_draft,
    save_draft,
    start_draft,
)
from liftingtracker.services.registration_rules import STEP_TITLES, describe_rules

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/registration", tags=["registration"])


class RegistrationStepBody(BaseModel):
    """Any draft field plus exactly one navigation flag."""

    model_config = ConfigDict(extra="allow")

    next_step: bool = False
    prev_step: bool = False
    complete_registration: bool = False


def _draft_payload(wizard: RegistrationWizard) -> dict:
    return {
        "current_step": wizard.current_step,
        "total_steps": TOTAL_STEPS,
        "step_title": STEP_TITLES.get(wizard.current_step, "Registration"),
        "fields": wizard.public_fields(),
    }


def _failure(message: str, wizard: RegistrationWizard) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": message, "data": _draft_payload(wizard)},
    )


async def _new_draft_response(session: AsyncSession) -> dict:
    draft, token = await start_draft(session)
    wizard = RegistrationWizard.from_draft(draft)
    return {
        "success": True,
        "data": {
            "draft_token": token,
            "csrf_token": make_csrf_token(draft_csrf_scope(token)),
            **_draft_payload(wizard),
        },
    }


@router.get("/rules", summary="Per-step validation rules for client-side checks")
async def get_rules() -> dict:
    return {"success": True, "data": describe_rules()}


@router.post("/start", summary="Start a registration draft")
async def start_registration(
    session: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    if not settings.registration_enabled:
        raise PermissionDeniedError("Registration is currently disabled")
    return await _new_draft_response(session)


@router.get("", summary="Current registration draft", responses={404: {"description": "Draft expired"}})
async def get_registration(
    session: Annotated[AsyncSession, Depends(get_db)],
    draft_token: Annotated[str, Depends(get_draft_token)],
) -> dict:
    draft = await load_draft(session, draft_token)
    return {"success": True, "data": _draft_payload(RegistrationWizard.from_draft(draft))}


@router.post(
    "/step",
    summary="Submit the current step and navigate",
    dependencies=[Depends(verify_draft_csrf)],
    responses={
        400: {"description": "Step validation or account creation failed; draft is preserved"},
        403: {"description": "Security check failed"},
        404: {"description": "Draft expired"},
    },
)
async def submit_step(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db)],
    draft_token: Annotated[str, Depends(get_draft_token)],
    body: RegistrationStepBody,
):
    draft = await load_draft(session, draft_token)
    wizard = RegistrationWizard.from_draft(draft)
    wizard.merge(dict(body.model_extra or {}))

    message = None
    if body.next_step:
        message = wizard.next()
    elif body.prev_step:
        wizard.prev()
    elif body.complete_registration:
        message = wizard.check_complete()
        if message is None:
            # Keep the submitted values even if account creation fails below
            await save_draft(session, draft, wizard)
            await session.commit()
            try:
                user = await create_account(session, wizard.data)
                tokens = issue_tokens(session, user)
                await session.delete(draft)
                await log_action(
                    session, user.id, "register", "user", user.id, ip_address=client_ip(request)
                )
                await session.commit()
            except ValidationError as e:
                await session.rollback()
                logger.info("Registration completion failed: %s", e.message)
                return _failure(e.message, wizard)
            logger.info("User %s registered", user.id)
            return {
                "success": True,
                "data": {
                    "completed": True,
                    "redirect": "/dashboard",
                    **token_response(tokens, user).model_dump(),
                },
            }

    await save_draft(session, draft, wizard)
    await session.commit()
    if message:
        return _failure(message, wizard)
    return {"success": True, "data": _draft_payload(wizard)}


@router.post(
    "/restart",
    summary="Discard the draft and start over",
    dependencies=[Depends(verify_draft_csrf)],
)
async def restart_registration(
    session: Annotated[AsyncSession, Depends(get_db)],
    draft_token: Annotated[str, Depends(get_draft_token)],
) -> dict:
    await discard_draft(session, draft_token)
    return await _new_draft_response(session)
