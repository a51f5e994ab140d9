"""Inbound email webhook

The mail provider posts every message sent to an `order-<slug>@<inbound domain>`
address here as multipart form data: `to`, `from`, `subject`, `text`,
`html`, `envelope` and, when raw forwarding is enabled, the full MIME source
in `email`.

The endpoint always answers 200. A non-2xx answer makes the provider retry
the delivery, which would record the same reply again; rejected and failed
messages are logged instead.
"""

from typing import Annotated, Optional, Union

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.datastructures import FormData, UploadFile

from config import Settings
from dependencies import get_app_settings, get_recorder
from communications.inbound_email import InboundEmailPayload
from communications.recorder import CommunicationRecorder, InboundOutcome, InboundResult
from observability.logging_config import get_logger
from observability.metrics import inbound_emails_total

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


async def _field(form: FormData, name: str) -> Optional[Union[str, bytes]]:
    value = form.get(name)
    if isinstance(value, UploadFile):
        return await value.read()
    return value


async def _text_field(form: FormData, name: str) -> Optional[str]:
    value = await _field(form, name)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


async def payload_from_form(form: FormData) -> InboundEmailPayload:
    """Map provider form fields onto an InboundEmailPayload.

    `email` may arrive as a plain field or as a file part; raw bytes are
    passed through so the MIME parser sees the original encoding.
    """
    return InboundEmailPayload(
        to=await _text_field(form, "to"),
        from_email=await _text_field(form, "from"),
        subject=await _text_field(form, "subject"),
        text=await _text_field(form, "text"),
        html=await _text_field(form, "html"),
        envelope=await _text_field(form, "envelope"),
        raw_email=await _field(form, "email"),
    )


@router.post("/inbound-email", include_in_schema=True)
@router.post("/sendgrid/inbound", include_in_schema=False)
async def receive_inbound_email(
    request: Request,
    recorder: Annotated[CommunicationRecorder, Depends(get_recorder)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> JSONResponse:
    """Record a customer reply posted by the mail provider.

    Responds with `{"message"}`, plus `communicationId` when a reply was
    recorded. Never responds with an error status.
    """
    try:
        form = await request.form(max_part_size=settings.MAX_RAW_EMAIL_BYTES)
        payload = await payload_from_form(form)
    except Exception as e:
        logger.error(f"Could not read inbound email form: {e}", exc_info=True)
        inbound_emails_total.labels(outcome=InboundOutcome.PROCESSING_FAILED.value).inc()
        result = InboundResult(InboundOutcome.PROCESSING_FAILED)
        return JSONResponse(status_code=200, content=result.to_response())

    result = await recorder.handle_inbound(payload)

    logger.info(
        f"Inbound email handled: {result.outcome.value}",
        extra={"outcome": result.outcome.value, "communication_id": result.communication_id}
    )
    return JSONResponse(status_code=200, content=result.to_response())
