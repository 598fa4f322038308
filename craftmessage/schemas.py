"""
Pydantic schemas for request/response validation.

This module contains:
- Request models for incoming data validation
- Response models for API responses
"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from craftmessage.models import MAX_TEXT_LENGTH


# =============================================================================
# Pydantic Request Models
# =============================================================================

class SubmissionRequest(BaseModel):
    """
    A decoded message submission from the game network handler.

    Validates:
    - player_id: UUID of the submitting player
    - text: trimmed, 1-256 characters
    """
    player_id: UUID = Field(..., description="Submitting player's UUID")
    text: str = Field(
        ...,
        min_length=1,
        max_length=MAX_TEXT_LENGTH,
        description="Message text"
    )

    @field_validator("text", mode="before")
    @classmethod
    def strip_text(cls, v):
        """The client trims whitespace before sending; do the same here."""
        if isinstance(v, str):
            return v.strip()
        return v


# =============================================================================
# Pydantic Response Models
# =============================================================================

class SubmissionResponse(BaseModel):
    """Response model for an accepted submission."""
    status: str = Field(default="queued", description="Submission status")


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")


class MessageResponse(BaseModel):
    """A stored message."""
    id: int = Field(..., ge=1, description="Store-assigned message id")
    player_id: UUID = Field(..., description="Submitting player's UUID")
    text: str = Field(..., description="Message text")

    model_config = {
        "from_attributes": True,  # Allow creating from ORM objects
    }


class MessagesListResponse(BaseModel):
    """
    Response model for GET /messages.

    Messages are ordered newest first (id descending).
    """
    data: list[MessageResponse] = Field(
        default_factory=list,
        description="List of messages"
    )
    total: int = Field(..., ge=0, description="Number of messages returned")
    player_id: Optional[UUID] = Field(None, description="Player filter, if any")


class DeleteResponse(BaseModel):
    status: str = Field(default="deleted")
    id: int


class StatsResponse(BaseModel):
    """Response model for GET /stats."""
    total_messages: int = Field(..., ge=0, description="Total number of stored messages")
    available: bool = Field(..., description="Whether the message store is reachable")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
