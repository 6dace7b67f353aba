from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class SongStatus(str, Enum):
    PLAYABLE = "playable"
    PRACTICING = "practicing"


class SearchStatus(str, Enum):
    FOUND = "found"
    RELATED = "related"
    NOT_FOUND = "notFound"


class Availability(str, Enum):
    AVAILABLE = "available"
    NOT_AVAILABLE = "not_available"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Song:
    """One repertoire entry. Identity for deduplication is (title, artist)."""

    title: str
    artist: str
    genre: str = ""
    is_new: bool = False
    status: SongStatus = SongStatus.PLAYABLE

    @property
    def key(self) -> tuple:
        return (self.title, self.artist)

    @property
    def is_practicing(self) -> bool:
        return self.status == SongStatus.PRACTICING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "artist": self.artist,
            "genre": self.genre,
            "isNew": self.is_new,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class SearchOutcome:
    """Result of matching a visitor query against the song collection."""

    status: SearchStatus
    songs: List[Song] = field(default_factory=list)
    search_term: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "songs": [s.to_dict() for s in self.songs],
            "searchTerm": self.search_term,
        }


@dataclass(frozen=True)
class RankEntry:
    """One row of the search-popularity leaderboard."""

    id: str
    count: int
    artist: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "count": self.count, "artist": self.artist}


@dataclass(frozen=True)
class RequestRankEntry:
    """One row of the request leaderboard; requested terms may not be known songs."""

    id: str
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "count": self.count}


@dataclass(frozen=True)
class ParseDiagnostic:
    """A non-blank source line the parser dropped."""

    line_number: int
    line: str
    reason: str


@dataclass(frozen=True)
class AvailabilityCheck:
    """Verdict returned by the external sheet-music availability search."""

    result: Availability
    details: str
    sources: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result": self.result.value,
            "details": self.details,
            "sources": list(self.sources),
        }


@dataclass(frozen=True)
class BlogPost:
    id: str
    title: str
    content: str
    is_published: bool = False
    created_at: Optional[int] = None
    updated_at: Optional[int] = None
    image_url: Optional[str] = None

    @classmethod
    def from_document(cls, post_id: str, data: Dict[str, Any]) -> "BlogPost":
        return cls(
            id=post_id,
            title=data.get("title") or "",
            content=data.get("content") or "",
            is_published=bool(data.get("isPublished", False)),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
            image_url=data.get("imageUrl"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "isPublished": self.is_published,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.image_url:
            data["imageUrl"] = self.image_url
        return data
