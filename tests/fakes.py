"""テスト用のホスト環境の代用品."""

import asyncio
from typing import Any, Dict, List, Optional

from subtitle_sync.host_adapter import SessionHandle


def make_track(track_id: str, bcp47: Optional[str], track_type: str = 'SUBTITLES',
               is_none_track: bool = False) -> Dict[str, Any]:
    """ホストが返すトラックオブジェクトを作る"""
    return {
        'trackId': track_id,
        'bcp47': bcp47,
        'displayName': bcp47 or 'Off',
        'rawTrackType': track_type,
        'isNoneTrack': is_none_track,
    }


class FakeSession:
    """プレーヤーセッションの代用品"""

    def __init__(self, movie_id: Any = 81234567, tracks: Optional[List[Dict[str, Any]]] = None,
                 current: Optional[Dict[str, Any]] = None):
        self.movie_id = movie_id
        self.tracks = tracks if tracks is not None else [
            make_track('en-sub', 'en', 'SUBTITLES'),
            make_track('pl-cc', 'pl', 'CLOSEDCAPTIONS'),
            make_track('pl-sub', 'pl', 'SUBTITLES'),
            make_track('off', None, 'SUBTITLES', is_none_track=True),
        ]
        self.current = current if current is not None else self.tracks[0]
        self.switches: List[Dict[str, Any]] = []

    def getMovieId(self):
        return self.movie_id

    def getTimedTextTrackList(self):
        return self.tracks

    def getTextTrack(self):
        return self.current

    def setTimedTextTrack(self, track):
        self.switches.append(track)
        self.current = track


def make_handle(session_id: str = 'watch-1', session: Optional[FakeSession] = None) -> SessionHandle:
    return SessionHandle(
        player_app=None,
        api=None,
        video_player=None,
        session=session or FakeSession(),
        session_id=session_id,
    )


def make_window(session: Optional[FakeSession], session_id: Optional[str] = 'watch-1') -> Dict[str, Any]:
    """window.netflix のオブジェクトグラフを辞書で作る"""
    session_ids = [session_id] if session_id else []
    video_player = {
        'getAllPlayerSessionIds': lambda: session_ids,
        'getVideoPlayerBySessionId': lambda requested: session if requested == session_id else None,
    }
    player_app = {'getAPI': lambda: {'videoPlayer': video_player}}
    return {'netflix': {'appContext': {'state': {'playerApp': player_app}}}}


class FakeSource:
    """順に結果を返すセッション状態の読み取り（最後の結果を繰り返す）"""

    def __init__(self, *results: Any):
        self.results = list(results)
        self.calls = 0

    def try_snapshot(self):
        index = min(self.calls, len(self.results) - 1)
        self.calls += 1
        result = self.results[index]
        if isinstance(result, Exception):
            raise result
        return result


class FakeSurface:
    """動画要素の代用品"""

    def __init__(self, current_time: float = 0.0):
        self.current_time = current_time
        self.listeners: Dict[str, List[Any]] = {}

    def add_event_listener(self, event, handler):
        self.listeners.setdefault(event, []).append(handler)

    def remove_event_listener(self, event, handler):
        handlers = self.listeners.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def fire(self, event: str) -> None:
        for handler in list(self.listeners.get(event, [])):
            handler()

    def listener_count(self) -> int:
        return sum(len(handlers) for handlers in self.listeners.values())


class RecordingDisplay:
    """表示内容を記録するオーバーレイ"""

    def __init__(self):
        self.text: Optional[str] = None
        self.shown: List[str] = []
        self.clears = 0

    def show(self, text: str) -> None:
        self.text = text
        self.shown.append(text)

    def clear(self) -> None:
        self.text = None
        self.clears += 1


class RecordingSleep:
    """待機時間を記録して即座に制御を返す sleep"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)
