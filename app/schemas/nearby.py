from typing import List, Optional

from pydantic import Field

from app.schemas.base import BaseSchema


class TrackMetadata(BaseSchema):
    id: str
    title: str
    album: str
    artist: str  # comma-joined, source order
    url: Optional[str] = None


class EnrichedNearbyUser(BaseSchema):
    user_id: str
    first_name: str
    last_name: str
    avatar: Optional[str] = None
    likes: int = 0
    song: Optional[TrackMetadata] = None
    history: List[TrackMetadata] = Field(default_factory=list)


class BandedResult(BaseSchema):
    close: List[EnrichedNearbyUser] = Field(default_factory=list)
    medium: List[EnrichedNearbyUser] = Field(default_factory=list)
    far: List[EnrichedNearbyUser] = Field(default_factory=list)
