from typing import Optional

from pydantic import BaseModel, Field

from app.schemas.enums import PlayStatus


class SongQuery(BaseModel):
    title: str = Field(..., min_length=1)
    artist: Optional[str] = None
    album: Optional[str] = None


class StatusChangeRequest(BaseModel):
    status: PlayStatus
    song: Optional[SongQuery] = None
