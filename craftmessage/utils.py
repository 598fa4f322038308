"""
Input helpers shared by the service and the HTTP layer.
"""

import logging
from typing import Optional, Union
from uuid import UUID

from craftmessage.models import MAX_TEXT_LENGTH

logger = logging.getLogger(__name__)


def parse_player_id(value: Union[str, UUID, None]) -> Optional[UUID]:
    """
    Parse a player id given as a UUID or its string form.

    Returns:
        The UUID, or None if the value is missing or malformed
    """
    if isinstance(value, UUID):
        return value
    if not value:
        return None
    try:
        return UUID(str(value).strip())
    except ValueError:
        logger.debug(f"Invalid player id: {value!r}")
        return None


def normalize_text(text: Optional[str]) -> Optional[str]:
    """
    Trim a message the way the client screen does before sending.

    Returns:
        The trimmed text, or None if it is empty or longer than MAX_TEXT_LENGTH
    """
    if text is None:
        return None
    text = text.strip()
    if not text or len(text) > MAX_TEXT_LENGTH:
        return None
    return text
