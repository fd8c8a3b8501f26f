"""Overlay caption track selection."""

import logging
from typing import Any, List, Optional

from pydantic import ValidationError

from .host_adapter import SessionHandle, read_member
from .models import SubtitleTrack, TrackSelection

logger = logging.getLogger(__name__)

SUBTITLES = 'SUBTITLES'
CLOSED_CAPTIONS = 'CLOSEDCAPTIONS'


def to_track(raw: Any) -> Optional[SubtitleTrack]:
    """Build a SubtitleTrack from a host track object."""
    if raw is None:
        return None
    return SubtitleTrack(
        track_id=read_member(raw, 'trackId'),
        bcp47=read_member(raw, 'bcp47'),
        display_name=read_member(raw, 'displayName'),
        raw_track_type=read_member(raw, 'rawTrackType'),
        is_none_track=bool(read_member(raw, 'isNoneTrack')),
        raw=raw,
    )


def to_tracks(raw_tracks: List[Any]) -> List[SubtitleTrack]:
    """Convert host track objects, skipping the ones that do not validate."""
    tracks = []
    for raw in raw_tracks:
        try:
            track = to_track(raw)
        except ValidationError as e:
            logger.warning(f"Skipping malformed subtitle track: {e.error_count()} validation error(s)")
            continue
        if track is not None:
            tracks.append(track)
    return tracks


def choose_overlay(tracks: List[SubtitleTrack], overlay_language: str,
                   prefer_closed_captions: bool = False) -> Optional[SubtitleTrack]:
    """
    Pick the overlay track among ``tracks``.

    Only tracks whose language tag starts with ``overlay_language`` and that
    are not the "Off" track qualify. The preferred caption type wins, then
    the other type, then any qualifying track.
    """
    matching = [
        track for track in tracks
        if track.bcp47 and track.bcp47.startswith(overlay_language) and not track.is_none_track
    ]
    if not matching:
        return None

    order = [CLOSED_CAPTIONS, SUBTITLES] if prefer_closed_captions else [SUBTITLES, CLOSED_CAPTIONS]
    for track_type in order:
        for track in matching:
            if track.raw_track_type == track_type:
                return track
    return matching[0]


def select_overlay_track(session: SessionHandle, overlay_language: str = 'pl',
                         prefer_closed_captions: bool = False) -> TrackSelection:
    """
    Read the session's caption tracks and choose the overlay track.

    Never raises; a session that cannot be read yields an empty selection.
    """
    selection = TrackSelection()

    try:
        selection.all = to_tracks(session.timed_text_tracks())
        current = to_tracks([session.current_text_track()])
        selection.current = current[0] if current else None
    except Exception as e:
        logger.error(f"Error getting subtitle tracks: {e}")
        return selection

    selection.overlay = choose_overlay(selection.all, overlay_language, prefer_closed_captions)
    if selection.overlay is None:
        logger.warning(f"No subtitle tracks found for language: {overlay_language}")
        return selection

    logger.info(
        f"Subtitle tracks: overlay_language={overlay_language}, prefer_cc={prefer_closed_captions}, "
        f"selected_type={selection.overlay.raw_track_type}, total_tracks={len(selection.all)}, "
        f"current_track={selection.current.bcp47 if selection.current else None}"
    )
    return selection
