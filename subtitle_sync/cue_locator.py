"""Point-in-time lookup over a sorted cue list."""

from typing import Optional, Sequence, Union

from .models import Cue, CueList


def find_active(timestamp_ms: int, cues: Union[CueList, Sequence[Cue], None]) -> Optional[Cue]:
    """
    Return the cue displayed at ``timestamp_ms`` or None.

    ``cues`` must be sorted ascending by start time. The scan stops at the
    first cue that starts after the timestamp.

    Args:
        timestamp_ms: Playback position in milliseconds
        cues: CueList or list of cues sorted by start_ms

    Returns:
        The first cue with start_ms <= timestamp_ms < end_ms, or None
    """
    if isinstance(cues, CueList):
        cues = cues.cues
    if not isinstance(cues, (list, tuple)) or not cues:
        return None

    for cue in cues:
        if cue.start_ms <= timestamp_ms < cue.end_ms:
            return cue
        if timestamp_ms < cue.start_ms:
            break
    return None
