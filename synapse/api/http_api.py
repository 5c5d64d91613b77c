"""
HTTP API adapter for the Synapse Agent engine.

Architectural role:
- Expose the agent over HTTP with a streaming response.
- Enforce adapter-level input validation and per-session exclusivity.
- Delegate orchestration to `synapse.core.engine.Engine.run`.
- Serialize progress events as NDJSON (one `{"type", "data"}` object per line).

Endpoint responsibilities:
- `GET /`: liveness text.
- `POST /api/agent`: multipart form (`message`, `file`, `fileType`, `fileName`,
  `session_id`) -> streamed NDJSON events.
- `POST /api/agent/send-email`: send an explicit draft, or the draft stored in a
  session scratchpad.
- `DELETE /api/agent/sessions/{session_id}`: drop a session and its scratchpad.

API request lifecycle (`POST /api/agent`):
1. Validate that a message or a file is present.
2. Resolve the session; reject with 409 while another request is in flight.
3. Start the engine on an `EventChannel` in a background task.
4. Forward channel events to the client until the engine finishes.

Input validation behavior:
- Neither message nor file -> HTTP 400.
- Upload above `MAX_UPLOAD_MB` -> HTTP 413, checked before the body is read
  when the multipart part reports its size.
- Session busy -> HTTP 409.
- Unknown session on delete -> HTTP 404.

Error handling strategy:
- The engine reports its own failures as `error` events inside the stream.
- Client disconnect closes the channel; the engine stops at its next emission.

Side effects:
- Loads environment variables at import time via `load_dotenv()`.
- Keeps sessions in process memory only.
"""

from dotenv import load_dotenv

load_dotenv()

import asyncio
import logging
import os

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from pydantic import BaseModel

from synapse.core.engine import Engine, build_engine
from synapse.core.events import EventChannel
from synapse.core.request import AgentRequest, UploadedFile
from synapse.core.scratchpad import EmailDraft
from synapse.core.session import SessionRegistry
from synapse.exceptions import EmailDeliveryError
from synapse.extraction import native
from synapse.mail.sender import MailConfig, send_email


logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

NDJSON_MEDIA_TYPE = "application/x-ndjson"
CHANNEL_BUFFER = int(os.getenv("EVENT_CHANNEL_BUFFER", "64"))


# ============================================================
# Request Schema
# ============================================================

class SendEmailRequest(BaseModel):
    """
    Body of `POST /api/agent/send-email`.

    Either `to`, `subject` and `html` are all given, or `session_id` names a
    session whose scratchpad holds a confirmed draft.
    """
    to: str | None = None
    subject: str | None = None
    html: str | None = None
    session_id: str | None = None


# ============================================================
# App Factory
# ============================================================

def create_app(
    engine: Engine | None = None,
    sessions: SessionRegistry | None = None,
    mail_config: MailConfig | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    The engine is built lazily from the environment on first use unless one is
    passed in.
    """
    api = FastAPI(title="Synapse Agent")
    api.state.engine = engine
    api.state.sessions = sessions if sessions is not None else SessionRegistry()
    api.state.mail_config = mail_config if mail_config is not None else MailConfig()
    api.state.tasks = set()

    api.add_api_route("/", health, methods=["GET"], response_class=PlainTextResponse)
    api.add_api_route("/api/agent", agent, methods=["POST"])
    api.add_api_route("/api/agent/send-email", send_email_endpoint, methods=["POST"])
    api.add_api_route("/api/agent/sessions/{session_id}", delete_session, methods=["DELETE"])
    return api


def upload_too_large() -> JSONResponse:
    return JSONResponse(
        status_code=413,
        content={"error": f"File exceeds max size limit of {native.MAX_FILE_SIZE_MB:g} MB."},
    )


def get_engine(api: FastAPI) -> Engine:
    if api.state.engine is None:
        api.state.engine = build_engine()
    return api.state.engine


# ============================================================
# Endpoints
# ============================================================

async def health() -> str:
    return "Synapse Agent Backend Running."


async def agent(
    request: Request,
    message: str | None = Form(None),
    file: UploadFile | None = File(None),
    fileType: str | None = Form(None),
    fileName: str | None = Form(None),
    session_id: str | None = Form(None),
):
    """
    Run the agent on one user turn and stream its events.

    Response formatting:
    - `application/x-ndjson`, one event per line, in emission order.
    - The stream ends when the engine returns; there is no terminator record.
    """
    text = (message or "").strip()

    if not text and file is None:
        return JSONResponse(status_code=400, content={"error": "Message or file is required."})

    upload = None
    if file is not None:
        if file.size is not None and file.size > native.MAX_FILE_SIZE_BYTES:
            return upload_too_large()
        data = await file.read()
        if len(data) > native.MAX_FILE_SIZE_BYTES:
            return upload_too_large()
        upload = UploadedFile.from_upload(
            data,
            fileType or file.content_type,
            fileName or file.filename,
        )

    registry: SessionRegistry = request.app.state.sessions
    session = registry.get_or_create(session_id)

    if session.busy:
        return JSONResponse(
            status_code=409,
            content={"error": "A request for this session is already in progress."},
        )

    engine = get_engine(request.app)
    await session.lock.acquire()

    agent_request = AgentRequest(text=text or None, file=upload)
    channel = EventChannel(maxsize=CHANNEL_BUFFER)

    async def produce():
        try:
            await engine.run(agent_request, session.scratchpad, channel)
        finally:
            await channel.finish()
            session.lock.release()

    task = asyncio.create_task(produce())
    request.app.state.tasks.add(task)
    task.add_done_callback(request.app.state.tasks.discard)

    async def event_stream():
        """
        Yield NDJSON lines from the channel.

        Side effects:
        - Checks client connection state before every line.
        - Closes the channel when the consumer stops for any reason.
        """
        try:
            async for event in channel:
                if await request.is_disconnected():
                    logger.info("Client disconnected from session %s", session.session_id)
                    return
                yield event.to_json_line()
        finally:
            channel.close()

    return StreamingResponse(
        event_stream(),
        media_type=NDJSON_MEDIA_TYPE,
        headers={"X-Session-Id": session.session_id},
    )


async def send_email_endpoint(body: SendEmailRequest, request: Request):
    """
    Send an email draft.

    Input validation behavior:
    - Explicit fields take precedence over a session draft.
    - No complete draft from either source -> HTTP 400.
    - Delivery failure -> HTTP 500 with the failure reason.
    """
    draft = None

    if body.to and body.subject and body.html:
        draft = EmailDraft(to=body.to, subject=body.subject, html=body.html)
    elif body.session_id:
        session = request.app.state.sessions.get(body.session_id)
        if session is not None:
            draft = session.scratchpad.draft_artifact

    if draft is None:
        return JSONResponse(
            status_code=400,
            content={"error": "Missing required email fields (to, subject, html)."},
        )

    try:
        await send_email(draft, request.app.state.mail_config)
    except EmailDeliveryError as exc:
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "Failed to send email.", "error": str(exc)},
        )

    return {"success": True, "message": f"Email successfully sent to {draft.to}."}


async def delete_session(session_id: str, request: Request):
    if not request.app.state.sessions.discard(session_id):
        return JSONResponse(status_code=404, content={"error": "Unknown session."})
    return {"deleted": True, "session_id": session_id}


app = create_app()
