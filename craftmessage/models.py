"""
SQLAlchemy ORM models for database tables.

For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import Column, Integer, String, Uuid

from craftmessage.storage import Base

MAX_TEXT_LENGTH = 256


class Message(Base):
    """
    A text message submitted by a player.

    Table: messages
    Primary Key: id (assigned by the store on first successful write)
    """
    __tablename__ = "messages"
    # ids are never reused, even after the newest row is deleted
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    player_id = Column(Uuid, nullable=False, index=True)
    text = Column(String(MAX_TEXT_LENGTH), nullable=False)

    def __repr__(self) -> str:
        return f"Message(id={self.id!r}, player_id={self.player_id!r}, text={self.text!r})"
