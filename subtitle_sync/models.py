"""Data models for parsed captions and caption tracks."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Cue(BaseModel):
    """A single timed caption entry."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="Caption text, may contain line breaks")
    start_ms: int = Field(..., ge=0, description="Start time in milliseconds")
    end_ms: int = Field(..., description="End time in milliseconds (exclusive)")

    @model_validator(mode="after")
    def _check_range(self) -> "Cue":
        if self.end_ms <= self.start_ms:
            raise ValueError(f"end_ms ({self.end_ms}) must be greater than start_ms ({self.start_ms})")
        return self

    def duration_ms(self) -> int:
        """Length of the cue in milliseconds."""
        return self.end_ms - self.start_ms

    def contains(self, timestamp_ms: int) -> bool:
        """True when the timestamp falls inside [start_ms, end_ms)."""
        return self.start_ms <= timestamp_ms < self.end_ms

    def __str__(self) -> str:
        return f"{self.start_ms} -> {self.end_ms} | {self.text}"


class CueList(BaseModel):
    """Cues of one caption document, ordered by start time."""

    cues: list[Cue] = Field(default_factory=list, description="Cues sorted ascending by start_ms")
    language: Optional[str] = Field(None, description="Language tag detected in the document")

    @model_validator(mode="after")
    def _check_sorted(self) -> "CueList":
        for previous, current in zip(self.cues, self.cues[1:]):
            if current.start_ms < previous.start_ms:
                raise ValueError("cues must be sorted ascending by start_ms")
        return self

    def is_empty(self) -> bool:
        return not self.cues

    def multiline_count(self) -> int:
        """Number of cues whose text spans more than one line."""
        return sum(1 for cue in self.cues if "\n" in cue.text)


class CacheKey(BaseModel):
    """Key of the subtitle cache: title identifier plus language."""

    model_config = ConfigDict(frozen=True)

    content_id: str = Field(..., description="Identifier of the playing title")
    language: str = Field(..., description="Overlay language tag")

    def __str__(self) -> str:
        return f"{self.content_id}_{self.language}"


class SubtitleTrack(BaseModel):
    """Normalized view of a caption track exposed by the player session."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    track_id: Optional[Any] = Field(None, description="Host track identifier")
    bcp47: Optional[str] = Field(None, description="Language tag, e.g. 'pl' or 'en-US'")
    display_name: Optional[str] = Field(None, description="Human readable track name")
    raw_track_type: Optional[str] = Field(None, description="SUBTITLES or CLOSEDCAPTIONS")
    is_none_track: bool = Field(False, description="True for the 'Off' pseudo track")
    raw: Any = Field(None, exclude=True, description="Host track object passed back on switch")


class TrackSelection(BaseModel):
    """Result of choosing the overlay track among the available ones."""

    overlay: Optional[SubtitleTrack] = Field(None, description="Track chosen for the overlay")
    all: list[SubtitleTrack] = Field(default_factory=list, description="Every available track")
    current: Optional[SubtitleTrack] = Field(None, description="Track active before switching")


class LifecycleState(str, Enum):
    """Per-navigation state of the lifecycle coordinator."""

    IDLE = "idle"
    DETECTING = "detecting"
    ARMED = "armed"
