"""
外部プレーヤーアプリケーションへのアダプター

ホストページが公開しているプレーヤーのオブジェクトグラフは非同期に
初期化され、購読できないためポーリングで読み取る。オブジェクトは
辞書でも属性を持つオブジェクトでもよい。
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from .error_handler import HostAccessError, TrackSwitchError
from .models import SubtitleTrack

logger = logging.getLogger(__name__)


def read_member(obj: Any, name: str) -> Any:
    """辞書キーまたは属性として値を読む（存在しなければNone）"""
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def call_member(obj: Any, name: str, *args: Any) -> Any:
    """呼び出し可能なメンバーを呼ぶ（存在しなければNone）"""
    member = read_member(obj, name)
    if not callable(member):
        return None
    return member(*args)


def resolve_path(root: Any, path: str) -> Any:
    """ドット区切りのパスをたどる"""
    current = root
    for name in path.split('.'):
        current = read_member(current, name)
        if current is None:
            return None
    return current


@dataclass(frozen=True)
class SessionHandle:
    """発見されたプレーヤーセッションへの参照"""

    player_app: Any
    api: Any
    video_player: Any
    session: Any
    session_id: str

    def content_id(self) -> Optional[str]:
        """再生中タイトルのID。取得できなければNone"""
        try:
            movie_id = call_member(self.session, 'getMovieId')
        except Exception as e:
            logger.warning(f"Cannot read content id from session {self.session_id}: {e}")
            return None
        return None if movie_id is None else str(movie_id)

    def timed_text_tracks(self) -> List[Any]:
        tracks = call_member(self.session, 'getTimedTextTrackList')
        return list(tracks) if isinstance(tracks, (list, tuple)) else []

    def current_text_track(self) -> Any:
        return call_member(self.session, 'getTextTrack')

    def set_text_track(self, track: Any) -> None:
        """
        アクティブな字幕トラックを切り替える

        Args:
            track: SubtitleTrack またはホストのトラックオブジェクト

        Raises:
            TrackSwitchError: セッションが切り替えに対応していない、または失敗した場合
        """
        raw_track = track.raw if isinstance(track, SubtitleTrack) else track
        language = track.bcp47 if isinstance(track, SubtitleTrack) else read_member(track, 'bcp47')
        track_id = read_member(raw_track, 'trackId')

        setter = read_member(self.session, 'setTimedTextTrack')
        if not callable(setter):
            raise TrackSwitchError("Session does not support setTimedTextTrack",
                                   track_id=track_id, language=language)
        try:
            setter(raw_track)
        except Exception as e:
            raise TrackSwitchError(f"setTimedTextTrack failed: {e}",
                                   track_id=track_id, language=language) from e


class NetflixHostAdapter:
    """window.netflix 配下のプレーヤーAPIからセッションを取り出すアダプター"""

    PLAYER_APP_PATH = 'netflix.appContext.state.playerApp'

    def __init__(self, root_provider: Callable[[], Any]):
        """
        Args:
            root_provider: ホストのグローバルオブジェクトを返す関数
        """
        self.root_provider = root_provider

    def try_snapshot(self) -> Optional[SessionHandle]:
        """
        現在のセッション状態を一度だけ読み取る

        Returns:
            SessionHandle: セッションオブジェクトが得られた場合
            None: アプリケーション、セッションID、セッションのいずれかが未準備

        Raises:
            HostAccessError: オブジェクトグラフの読み取り中に例外が発生した場合
        """
        try:
            player_app = resolve_path(self.root_provider(), self.PLAYER_APP_PATH)
            if player_app is None:
                return None

            api = call_member(player_app, 'getAPI')
            video_player = read_member(api, 'videoPlayer')

            session_ids = call_member(video_player, 'getAllPlayerSessionIds')
            if not isinstance(session_ids, (list, tuple)):
                session_ids = []

            # 通常アクティブなセッションは1つ
            session_id = session_ids[0] if session_ids else None
            session = (
                call_member(video_player, 'getVideoPlayerBySessionId', session_id)
                if session_id else None
            )
        except Exception as e:
            raise HostAccessError(f"Error accessing player API: {e}", path=self.PLAYER_APP_PATH) from e

        if session is None:
            return None

        return SessionHandle(
            player_app=player_app,
            api=api,
            video_player=video_player,
            session=session,
            session_id=str(session_id),
        )
