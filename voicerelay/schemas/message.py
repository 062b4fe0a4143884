"""
schemas/message.py
------------------
Pydantic models for voice message exchange.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class MessageRead(BaseModel):
    id: str
    user_id: str
    username: str
    audio_key: Optional[str] = None
    created_at: datetime
    responded: bool
    response_audio_key: Optional[str] = None
    response_text: Optional[str] = None
    responded_at: Optional[datetime] = None
    responded_by: Optional[str] = None

    model_config = {"from_attributes": True}


class MessageSubmitted(BaseModel):
    id: str
    key: str
    url: Optional[str] = None


class TextResponseCreate(BaseModel):
    text: str = Field(
        ...,
        min_length=1,
        max_length=5000,
        examples=["Praying for you"],
        description="Moderator's written reply",
    )


class PlaybackUrl(BaseModel):
    url: str
    expires_in: int  # seconds
