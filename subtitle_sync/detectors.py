"""
ホスト環境のイベントを受け取る検出器

ページ遷移、動画要素の出現、一時停止/再生、完了したネットワーク
リクエストをコールバックで通知する。ホスト側の統合コードが
push_state() や surface_added() などを呼び出してイベントを伝える。
コールバック内の例外は検出器の中でログに記録して止める。
"""

import logging
from typing import Any, Callable, Iterable, List, Optional, Protocol

logger = logging.getLogger(__name__)


class VideoSurface(Protocol):
    """再生位置と pause/play イベントを持つ動画要素"""

    current_time: float

    def add_event_listener(self, event: str, handler: Callable[[], None]) -> None:
        ...

    def remove_event_listener(self, event: str, handler: Callable[[], None]) -> None:
        ...


class Display(Protocol):
    """オーバーレイの表示先"""

    def show(self, text: str) -> None:
        ...

    def clear(self) -> None:
        ...


class NavigationDetector:
    """SPAのページ遷移を検出するクラス

    一度だけ attach でき、プロセスの間ずっと残る。同じURLへの
    遷移通知は無視する。
    """

    def __init__(self, initial_url: str = ''):
        self._last_url = initial_url
        self._callback: Optional[Callable[[str], None]] = None

    @property
    def attached(self) -> bool:
        return self._callback is not None

    @property
    def current_url(self) -> str:
        return self._last_url

    def attach(self, on_route_change: Callable[[str], None]) -> None:
        """
        遷移コールバックを登録する

        Args:
            on_route_change: 新しいURLを受け取るコールバック
        """
        logger.debug("NavigationDetector.attach() called")
        if self._callback is not None:
            logger.debug("Route detector already attached, skipping")
            return
        self._callback = on_route_change
        logger.info("Route detection setup complete")

    def detach(self) -> None:
        self._callback = None
        logger.info("Route detection cleaned up")

    def push_state(self, url: str) -> None:
        """history.pushState 相当の遷移"""
        self._handle_route_change(url)

    def replace_state(self, url: str) -> None:
        """history.replaceState 相当の遷移"""
        self._handle_route_change(url)

    def pop_state(self, url: str) -> None:
        """ブラウザの戻る/進む"""
        self._handle_route_change(url)

    def _handle_route_change(self, url: str) -> None:
        if url == self._last_url:
            return
        self._last_url = url
        logger.info(f"Route change detected: {url}")

        if self._callback is None:
            return
        try:
            self._callback(url)
        except Exception as e:
            logger.error(f"Error in route change callback: {e}")


class VideoSurfaceDetector:
    """動画要素の出現を一度だけ通知するクラス

    detect() の時点で既に存在する要素は見ない。前のページの要素で
    即座に発火すると、新しいページの要素を検出できなくなるため。
    """

    def __init__(self):
        self._callback: Optional[Callable[[Any], None]] = None

    @property
    def active(self) -> bool:
        return self._callback is not None

    def detect(self, on_detected: Callable[[Any], None]) -> None:
        """
        次に現れる動画要素で一度だけコールバックを呼ぶ

        Args:
            on_detected: 動画要素を受け取るコールバック
        """
        logger.debug("VideoSurfaceDetector.detect() called")
        if not callable(on_detected):
            logger.error("detect: on_detected must be callable")
            return
        self._callback = on_detected
        logger.info("Video detection started")

    def surface_added(self, surface: Any) -> bool:
        """
        ページに動画要素が追加されたことを通知する

        Returns:
            コールバックを呼んだ場合True
        """
        if self._callback is None or surface is None:
            return False

        callback = self._callback
        self._callback = None
        logger.info("Video element detected")

        try:
            callback(surface)
        except Exception as e:
            logger.error(f"Error in on_detected callback: {e}")
        return True

    def cleanup(self) -> None:
        self._callback = None
        logger.debug("Video detection cleaned up")


class PlaybackDetector:
    """動画要素の pause/play を通知するクラス

    同時に追跡する要素は1つだけ。
    """

    def __init__(self):
        self._surface: Any = None
        self._on_pause: Optional[Callable[[], None]] = None
        self._on_play: Optional[Callable[[], None]] = None

    @property
    def tracked_surface(self) -> Any:
        return self._surface

    def attach(self, surface: Any, on_pause: Callable[[], None], on_play: Callable[[], None]) -> None:
        """
        pause/play リスナーを登録する

        Args:
            surface: 監視する動画要素
            on_pause: 一時停止時のコールバック
            on_play: 再生再開時のコールバック
        """
        logger.debug("PlaybackDetector.attach() called")

        if surface is None or not callable(getattr(surface, 'add_event_listener', None)):
            logger.error("attach: invalid video surface")
            return
        if not callable(on_pause) or not callable(on_play):
            logger.error("attach: on_pause and on_play must be callable")
            return

        if self._surface is surface:
            logger.debug("Video already tracked, skipping")
            return

        if self._surface is not None:
            self.detach()

        self._surface = surface
        self._on_pause = on_pause
        self._on_play = on_play

        surface.add_event_listener('pause', self._handle_pause)
        surface.add_event_listener('play', self._handle_play)
        logger.info("Attached pause/play listeners to video")

    def detach(self) -> None:
        if self._surface is not None:
            try:
                self._surface.remove_event_listener('pause', self._handle_pause)
                self._surface.remove_event_listener('play', self._handle_play)
            except Exception as e:
                logger.error(f"Error removing event listeners: {e}")

        self._surface = None
        self._on_pause = None
        self._on_play = None
        logger.debug("Playback detection cleaned up")

    def _handle_pause(self) -> None:
        logger.info("Video paused")
        if self._on_pause is None:
            return
        try:
            self._on_pause()
        except Exception as e:
            logger.error(f"Error in on_pause callback: {e}")

    def _handle_play(self) -> None:
        logger.info("Video resumed")
        if self._on_play is None:
            return
        try:
            self._on_play()
        except Exception as e:
            logger.error(f"Error in on_play callback: {e}")


class InMemoryRequestObserver:
    """完了したリクエストを手動で通知するリクエスト監視"""

    def __init__(self):
        self._callback: Optional[Callable[[Iterable[Any]], None]] = None

    @property
    def attached(self) -> bool:
        return self._callback is not None

    def attach(self, callback: Callable[[Iterable[Any]], None]) -> None:
        self._callback = callback

    def detach(self) -> None:
        self._callback = None

    def record(self, *entries: Any) -> None:
        """完了したリクエスト（URLまたはエントリ）を通知する"""
        if self._callback is None:
            return
        batch: List[Any] = list(entries)
        try:
            self._callback(batch)
        except Exception as e:
            logger.error(f"Error in request observer callback: {e}")
