"""
Mail triage routes.

Manual trigger, run status and raw message retrieval for the back office.
Every route requires the X-API-Key header to match TRIAGE_API_KEY.
"""

import hmac

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from app.config import get_settings
from app.features.mail_triage.jobs.triage_job import (
    MailTriageJob,
    MailTriageJobError,
    build_mail_triage_job,
)
from app.infrastructure.observability.logging import get_logger
from app.services.google_gmail_service import GoogleGmailError
from app.services.google_oauth_service import GoogleOAuthError

logger = get_logger(__name__)


async def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
    expected = get_settings().TRIAGE_API_KEY
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Triage API key not configured",
        )
    if not x_api_key or not hmac.compare_digest(x_api_key, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


def get_triage_job(request: Request) -> MailTriageJob:
    """The app's job instance, built on first use so startup never needs the full config."""
    job = getattr(request.app.state, "triage_job", None)
    if job is None:
        try:
            job = build_mail_triage_job(
                get_settings(), store=getattr(request.app.state, "store", None)
            )
        except MailTriageJobError as e:
            logger.error("Mail triage job unavailable", error=str(e))
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)
            ) from e
        request.app.state.triage_job = job
    return job


router = APIRouter(prefix="/triage", tags=["triage"], dependencies=[Depends(require_api_key)])


@router.post("/run")
async def run_triage(job: MailTriageJob = Depends(get_triage_job)) -> dict:
    """Run one triage pass now and return its metrics."""
    if job.is_running:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Triage run in progress")

    try:
        return await job.run_once()
    except MailTriageJobError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e)) from e


@router.get("/status")
async def triage_status(job: MailTriageJob = Depends(get_triage_job)) -> dict:
    return job.get_job_status()


@router.get("/messages/{message_id}")
async def get_message(message_id: str, job: MailTriageJob = Depends(get_triage_job)) -> dict:
    """Subject and body of a mailbox message, as the pipeline sees it."""
    try:
        message = await job.mailbox.get_message(message_id)
    except GoogleGmailError as e:
        if e.status_code == status.HTTP_404_NOT_FOUND:
            raise HTTPException(status_code=404, detail="Message not found") from e
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e)) from e
    except GoogleOAuthError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e)) from e

    return {
        "id": message.id,
        "thread_id": message.thread_id,
        "subject": message.subject,
        "body": message.body,
        "sender": message.sender,
        "received_at": message.received_at.isoformat(),
    }
