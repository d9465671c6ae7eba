from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from loguru import logger
import json

from ..domain.errors import JobNotFound, PermissionDenied
from ..domain.jobs import JOB_NOT_FOUND, PERMISSION_DENIED, JobOrchestrator, stream_job
from ..domain.models import Session
from . import deps
from .schemas import ErrorResponse, ImportAccepted, ImportRequest, JobSnapshot

router = APIRouter()

# Policy-violation close code for sockets without a caller identity
WS_POLICY_VIOLATION = 1008


@router.post(
    "/prompts/import",
    response_model=ImportAccepted,
    status_code=202,
    responses={400: {"model": ErrorResponse, "description": "Payload could not be parsed"}},
)
def import_prompt(
    body: ImportRequest,
    session: Session = Depends(deps.require_session),
    orchestrator: JobOrchestrator = Depends(deps.get_orchestrator),
):
    """
    Import a prompt/workflow export and start resolving its model dependencies.

    Returns as soon as the job exists; poll /prompts/jobs/{job_id} or subscribe
    on /prompts/events to follow it.
    """
    result = orchestrator.import_prompt(session, body.payload, body.format)
    if "error" in result:
        return JSONResponse(status_code=400, content=result)
    return result


@router.get(
    "/prompts/jobs/{job_id}",
    response_model=JobSnapshot,
    response_model_exclude_none=True,
    responses={
        403: {"model": ErrorResponse, "description": "Job belongs to another user"},
        404: {"model": ErrorResponse, "description": "No such job"},
    },
)
def get_import_job(
    job_id: str,
    session: Session = Depends(deps.require_session),
    orchestrator: JobOrchestrator = Depends(deps.get_orchestrator),
):
    """Current snapshot of an import job."""
    try:
        job = orchestrator.authorize(session, job_id)
    except JobNotFound:
        return JSONResponse(status_code=404, content={"error": JOB_NOT_FOUND})
    except PermissionDenied:
        return JSONResponse(status_code=403, content={"error": PERMISSION_DENIED})
    return job.to_json()


@router.websocket("/prompts/events")
async def import_events(websocket: WebSocket):
    """
    Live job updates.

    The client sends ``{"subscribe_job": "<id>"}``; the server answers with the
    job snapshot, then a fresh snapshot whenever the job changes, and a final
    one once it is terminal. Several subscriptions can follow each other on
    one socket.
    """
    app = websocket.app
    session = deps.session_from_headers(websocket.headers, app.state.users)
    if session is None:
        await websocket.close(code=WS_POLICY_VIOLATION)
        return

    orchestrator: JobOrchestrator = app.state.orchestrator
    poll_interval = app.state.settings.STREAM_POLL_INTERVAL_S

    await websocket.accept()
    await websocket.send_json({"status": "connected"})

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                request = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json({"error": "Messages must be JSON objects."})
                continue

            job_id = request.get("subscribe_job") if isinstance(request, dict) else None
            if not job_id:
                await websocket.send_json({"error": "Expected a subscribe_job field."})
                continue

            try:
                orchestrator.authorize(session, str(job_id))
            except JobNotFound:
                await websocket.send_json({"error": JOB_NOT_FOUND})
                continue
            except PermissionDenied:
                await websocket.send_json({"error": PERMISSION_DENIED})
                continue

            async for snapshot in stream_job(orchestrator.registry, str(job_id), poll_interval):
                await websocket.send_json(snapshot)
    except WebSocketDisconnect:
        logger.debug("Import events client {} disconnected", session.user_id)
