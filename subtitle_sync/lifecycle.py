"""
ページ遷移ごとのライフサイクル管理モジュール

視聴ページへの遷移ごとに
動画要素の検出 → セッション探索 → 字幕キャッシュと再生状態検出の開始
を一度だけ行い、次の遷移で全て解除する。遷移検出だけは解除しない。
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Set

from .config_handler import OverlaySettings, SyncConfig
from .cue_locator import find_active
from .detectors import (
    Display,
    InMemoryRequestObserver,
    NavigationDetector,
    PlaybackDetector,
    VideoSurfaceDetector,
)
from .host_adapter import NetflixHostAdapter, SessionHandle
from .models import CacheKey, LifecycleState
from .session_discovery import SessionDiscovery, is_watch_session
from .subtitle_cache import RequestObserver, SubtitleCache
from .tracks import select_overlay_track

logger = logging.getLogger(__name__)

UNKNOWN_CONTENT_ID = 'unknown'


@dataclass
class LifecycleOptions:
    """ライフサイクルの動作設定"""
    max_session_retries: int = 10
    stale_session_delay_ms: int = 500
    watch_marker: str = '/watch/'

    def __post_init__(self):
        """初期化後の検証"""
        if self.max_session_retries < 1:
            raise ValueError("セッション再試行回数は1以上である必要があります")
        if self.stale_session_delay_ms < 0:
            raise ValueError("待機時間は0以上である必要があります")

    def is_watch_url(self, url: Optional[str]) -> bool:
        return bool(url) and self.watch_marker in url


class LifecycleCoordinator:
    """視聴セッションごとに監視を準備・解除するクラス"""

    def __init__(
        self,
        navigation: NavigationDetector,
        video_detector: VideoSurfaceDetector,
        playback_detector: PlaybackDetector,
        discovery: SessionDiscovery,
        cache: SubtitleCache,
        request_observer: RequestObserver,
        display: Display,
        settings_provider: Callable[[], OverlaySettings] = OverlaySettings,
        options: Optional[LifecycleOptions] = None,
        sleep=asyncio.sleep
    ):
        """
        Args:
            navigation: ページ遷移の検出器（プロセス全体で共有）
            video_detector: 動画要素の検出器
            playback_detector: 一時停止/再生の検出器
            discovery: セッション探索
            cache: 字幕キャッシュ
            request_observer: 完了したネットワークリクエストの監視
            display: オーバーレイの表示先
            settings_provider: 遷移ごとに一度呼ばれるユーザー設定の取得関数
            options: 動作設定
            sleep: 待機関数
        """
        self.navigation = navigation
        self.video_detector = video_detector
        self.playback_detector = playback_detector
        self.discovery = discovery
        self.cache = cache
        self.request_observer = request_observer
        self.display = display
        self.settings_provider = settings_provider
        self.options = options or LifecycleOptions()
        self.sleep = sleep

        self.state = LifecycleState.IDLE
        self._cycle = 0
        self._surface: Any = None
        self._session: Optional[SessionHandle] = None
        self._settings: Optional[OverlaySettings] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def session(self) -> Optional[SessionHandle]:
        return self._session

    @property
    def settings(self) -> Optional[OverlaySettings]:
        return self._settings

    def start(self, initial_url: str = '') -> None:
        """遷移検出を開始し、視聴ページにいれば準備を始める"""
        logger.info("Coordinator start()")
        self.navigation.attach(self.handle_route_change)
        if self.options.is_watch_url(initial_url):
            self.arm()

    def stop(self) -> None:
        """全ての監視を解除する（プロセス終了時）"""
        self.teardown()
        self.navigation.detach()

    async def aclose(self) -> None:
        """監視を全て解除し、字幕キャッシュのHTTPクライアントを閉じる"""
        self.stop()
        await self.cache.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    def handle_route_change(self, url: str) -> None:
        logger.info(f"Route changed: {url}")
        self.teardown()
        if self.options.is_watch_url(url):
            self.arm()

    def arm(self) -> None:
        """動画要素の検出から新しいサイクルを始める"""
        logger.info("Arming video flow...")
        self._cycle += 1
        self.state = LifecycleState.DETECTING
        self.video_detector.detect(self._on_video_detected)

    def teardown(self) -> None:
        """
        現在のサイクルの監視を全て解除する

        既にアイドルなら何もしない。遷移検出は解除しない。
        """
        if self.state is LifecycleState.IDLE and not self._tasks and self._session is None:
            logger.debug("Teardown skipped: already idle")
            return

        logger.debug("Running teardown...")
        # 実行中の初期化タスクが古いサイクルとして終わるようにする
        self._cycle += 1
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

        self.playback_detector.detach()
        self.video_detector.cleanup()
        self._clear_display()
        self.cache.disarm()

        self._surface = None
        self._session = None
        self._settings = None
        self.state = LifecycleState.IDLE

    async def drain(self) -> None:
        """実行中の初期化とトラック切り替えが全て終わるまで待つ"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def handle_pause(self) -> None:
        """一時停止位置の字幕を表示する"""
        if self.state is not LifecycleState.ARMED or self._session is None or self._surface is None:
            return

        try:
            time_ms = int(float(self._surface.current_time) * 1000)
            content_id = self._session.content_id() or UNKNOWN_CONTENT_ID
            key = CacheKey(content_id=content_id, language=self._settings.overlay_language)

            cue = find_active(time_ms, self.cache.lookup(key))
            if cue is not None and cue.text.strip():
                self.display.show(cue.text)
            else:
                logger.debug(f"No cue at {time_ms}ms for {key}")
                self.display.clear()
        except Exception as e:
            logger.error(f"Error handling pause: {e}")

    def handle_play(self) -> None:
        self._clear_display()

    def _on_video_detected(self, surface: Any) -> None:
        logger.info("Video detected, initializing subtitle system...")
        self._surface = surface
        self._spawn(self._initialize(surface, self._cycle))

    async def _initialize(self, surface: Any, cycle: int) -> bool:
        try:
            session = await self._acquire_session(cycle)
            if session is None:
                return False
            return self._arm_session(surface, session)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Initialization error: {e}")
            return False

    async def _acquire_session(self, cycle: int) -> Optional[SessionHandle]:
        retries = self.options.max_session_retries

        for attempt in range(1, retries + 1):
            handle = await self.discovery.discover()
            if cycle != self._cycle:
                return None

            if handle is None:
                # 探索自体が再試行を使い切っている
                logger.error("Player session not available, abandoning this navigation")
                self._abandon()
                return None

            if is_watch_session(handle.session_id):
                logger.info(f"Valid watch session confirmed: {handle.session_id}")
                return handle

            logger.warning(
                f"Not a watch session yet: {handle.session_id} - retrying (attempt {attempt}/{retries})"
            )
            self._disarm_transient()
            await self.sleep(self.options.stale_session_delay_ms / 1000)
            if cycle != self._cycle:
                return None

        logger.error(f"No watch session after {retries} attempts, abandoning this navigation")
        self._abandon()
        return None

    def _arm_session(self, surface: Any, session: SessionHandle) -> bool:
        settings = self._read_settings()
        if not settings.enabled:
            logger.info("Overlay disabled in settings")
            self._abandon()
            return False

        self._session = session
        self._settings = settings
        self.cache.arm(session, self.request_observer)

        tracks = select_overlay_track(session, settings.overlay_language, settings.prefer_closed_captions)
        if tracks.overlay is not None:
            self._spawn(self.cache.request_fetch(tracks.overlay, tracks.current))
        else:
            logger.warning(f"Overlay subtitles ({settings.overlay_language}) not available")

        self.playback_detector.attach(surface, self.handle_pause, self.handle_play)
        self.state = LifecycleState.ARMED
        logger.info("Subtitle system initialized")
        return True

    def _read_settings(self) -> OverlaySettings:
        try:
            settings = self.settings_provider()
        except Exception as e:
            logger.error(f"Exception loading settings: {e}")
            return OverlaySettings()
        return settings if settings is not None else OverlaySettings()

    def _disarm_transient(self) -> None:
        self._clear_display()
        self.cache.disarm()
        self.playback_detector.detach()

    def _abandon(self) -> None:
        self._session = None
        self._surface = None
        self.state = LifecycleState.IDLE

    def _clear_display(self) -> None:
        try:
            self.display.clear()
        except Exception as e:
            logger.error(f"Error clearing display: {e}")

    def _spawn(self, coroutine) -> asyncio.Task:
        task = asyncio.ensure_future(coroutine)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task


def create_coordinator(
    root_provider: Callable[[], Any],
    display: Display,
    settings_provider: Callable[[], OverlaySettings] = OverlaySettings,
    config: Optional[SyncConfig] = None,
    navigation: Optional[NavigationDetector] = None,
    request_observer: Optional[RequestObserver] = None,
) -> LifecycleCoordinator:
    """
    標準の部品を組み立ててコーディネーターを作る

    Args:
        root_provider: ホストのグローバルオブジェクトを返す関数
        display: オーバーレイの表示先
        settings_provider: ユーザー設定の取得関数
        config: 動作設定（省略時はデフォルト）
        navigation: 共有する遷移検出器（省略時は生成する）
        request_observer: リクエスト監視（省略時は手動通知の監視）

    Returns:
        LifecycleCoordinator: start() 前のコーディネーター
    """
    config = config or SyncConfig()
    discovery = SessionDiscovery(NetflixHostAdapter(root_provider), config.discovery)
    cache = SubtitleCache(
        request_timeout=config.fetch_timeout,
        revert_delay=config.revert_delay_ms / 1000,
    )
    return LifecycleCoordinator(
        navigation=navigation or NavigationDetector(),
        video_detector=VideoSurfaceDetector(),
        playback_detector=PlaybackDetector(),
        discovery=discovery,
        cache=cache,
        request_observer=request_observer or InMemoryRequestObserver(),
        display=display,
        settings_provider=settings_provider,
        options=LifecycleOptions(
            max_session_retries=config.max_session_retries,
            stale_session_delay_ms=config.stale_session_delay_ms,
        ),
    )
