import logging
from contextlib import asynccontextmanager
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, Response, status
from pydantic import ValidationError

from craftmessage.config import get_settings
from craftmessage.logging_utils import RequestLoggingMiddleware, log_submission_data, setup_logging
from craftmessage.metrics import get_metrics
from craftmessage.payload import PayloadError, decode_payload
from craftmessage.schemas import (
    DeleteResponse,
    ErrorResponse,
    HealthResponse,
    MessageResponse,
    MessagesListResponse,
    StatsResponse,
    SubmissionRequest,
    SubmissionResponse,
)
from craftmessage.service import MessageService


setup_logging(get_settings().log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    - Startup: build the message service and start the store worker.
      The store itself is initialized lazily on first use.
    - Shutdown: drain the worker, then release the store.
    """
    settings = get_settings()
    service = MessageService(settings)
    service.start()
    app.state.message_service = service
    logger.info("CraftMessage server started")
    yield
    service.shutdown()
    logger.info("CraftMessage server stopped")


app = FastAPI(
    title="CraftMessage",
    description="Stores player messages submitted from the game",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


def get_service(request: Request) -> MessageService:
    return request.app.state.message_service


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness probe - always returns 200 once the server is running."""
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
def health_ready(response: Response, service: MessageService = Depends(get_service)) -> HealthResponse:
    """
    Readiness probe - 200 only if the message store is reachable.

    An unavailable store is probed again once per call, so readiness
    recovers without a restart.
    """
    if not service.is_available(reprobe=True):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", reason="message store not ready")
    return HealthResponse(status="ready")


# =============================================================================
# Submission Route
# =============================================================================

@app.post(
    "/messages",
    response_model=SubmissionResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        422: {"model": ErrorResponse, "description": "Invalid player id or payload"},
        503: {"model": ErrorResponse, "description": "Submission queue full"},
    }
)
async def submit_message(
    request: Request,
    x_player_id: Annotated[Optional[str], Header(alias="X-Player-Id")] = None,
    service: MessageService = Depends(get_service),
) -> SubmissionResponse:
    """
    Accept one message from the game network handler.

    Headers:
        - X-Player-Id: UUID of the submitting player
    Body:
        - the craftmessage:simple_message payload (length-prefixed UTF-8 string)

    The message is queued for the store worker; the response does not wait
    for the write.
    """
    raw_body = await request.body()
    logger.debug(f"Submission body size: {len(raw_body)} bytes")

    try:
        text = decode_payload(raw_body)
    except PayloadError as e:
        logger.error(f"Invalid payload: {e}")
        log_submission_data(request, player_id=x_player_id, result="invalid_payload")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"invalid payload: {e}"
        )

    try:
        submission = SubmissionRequest(player_id=x_player_id, text=text)
    except ValidationError as e:
        logger.error(f"Validation error: {e}")
        log_submission_data(request, player_id=x_player_id, result="validation_error")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e)
        )

    logger.info(f"Received message from player {submission.player_id}")

    if service.submit(submission.player_id, submission.text) is None:
        log_submission_data(request, player_id=x_player_id, result="rejected")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="submission queue full"
        )

    log_submission_data(request, player_id=x_player_id, result="queued")
    return SubmissionResponse(status="queued")


# =============================================================================
# Messages Routes
# =============================================================================

@app.get("/messages", response_model=MessagesListResponse)
def list_messages(
    player_id: Annotated[Optional[UUID], Query(description="Only this player's messages")] = None,
    service: MessageService = Depends(get_service),
) -> MessagesListResponse:
    """
    List stored messages, newest first.

    Returns an empty list when the message store is unavailable.
    """
    if player_id is not None:
        messages = service.list_for_player(player_id)
    else:
        messages = service.list_all()

    data = [MessageResponse.model_validate(msg) for msg in messages]
    logger.info(f"GET /messages: returned {len(data)} messages (player_id={player_id})")
    return MessagesListResponse(data=data, total=len(data), player_id=player_id)


@app.get(
    "/messages/{message_id}",
    response_model=MessageResponse,
    responses={404: {"model": ErrorResponse}},
)
def get_message(message_id: int, service: MessageService = Depends(get_service)) -> MessageResponse:
    message = service.find(message_id)
    if message is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="message not found")
    return MessageResponse.model_validate(message)


@app.delete(
    "/messages/{message_id}",
    response_model=DeleteResponse,
    responses={404: {"model": ErrorResponse}},
)
def delete_message(message_id: int, service: MessageService = Depends(get_service)) -> DeleteResponse:
    """Administrative removal of a single message."""
    if not service.delete(message_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="message not found")
    logger.info(f"Message {message_id} deleted")
    return DeleteResponse(id=message_id)


# =============================================================================
# Stats Route
# =============================================================================

@app.get("/stats", response_model=StatsResponse)
def get_statistics(service: MessageService = Depends(get_service)) -> StatsResponse:
    total = service.count()
    return StatsResponse(total_messages=total, available=service.is_available())


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus-style metrics."""
    body, content_type = get_metrics()
    return Response(content=body, media_type=content_type)
