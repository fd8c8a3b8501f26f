"""
字幕キャッシュとネットワーク監視モジュール

完了したネットワークリクエストの一覧から字幕ドキュメントのURLを検出し、
同じURLを独自に再取得して解析、(タイトルID, 言語) ごとにキャッシュする。
監視側はレスポンス本文を見られないため再取得が必要になる。
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Set, Union

import httpx

from .error_handler import CaptionFetchError, ErrorHandler, TrackSwitchError
from .host_adapter import SessionHandle, read_member
from .models import CacheKey, CueList, SubtitleTrack
from .ttml_parser import TTMLParser

logger = logging.getLogger(__name__)

CAPTION_HOST = 'oca.nflxvideo.net'
CAPTION_QUERY = '/?o='
UNKNOWN_LANGUAGE = 'unknown'


def is_subtitle_request(url: Any) -> bool:
    """CDNの字幕ドキュメントへのリクエストかを判定する"""
    return isinstance(url, str) and CAPTION_HOST in url and CAPTION_QUERY in url


class RequestObserver(Protocol):
    """完了したリクエストを通知する受動的な監視"""

    def attach(self, callback: Callable[[Iterable[Any]], None]) -> None:
        ...

    def detach(self) -> None:
        ...


class SubtitleCache:
    """セッション単位で字幕キューをキャッシュするクラス."""

    def __init__(
        self,
        parser: Optional[TTMLParser] = None,
        client: Optional[httpx.AsyncClient] = None,
        request_timeout: float = 10.0,
        revert_delay: float = 0.5,
        sleep=asyncio.sleep
    ):
        """
        キャッシュを初期化.

        Args:
            parser: TTMLパーサー
            client: 再取得に使うHTTPクライアント（省略時は生成する）
            request_timeout: リクエストタイムアウト（秒）
            revert_delay: トラック切り替え後に元へ戻すまでの待機（秒）
            sleep: 待機関数
        """
        self.parser = parser or TTMLParser()
        self.request_timeout = request_timeout
        self.revert_delay = revert_delay
        self.sleep = sleep
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(request_timeout),
            follow_redirects=True
        )
        self.error_handler = ErrorHandler(__name__)

        self._cache: Dict[CacheKey, CueList] = {}
        self._processed_urls: Set[str] = set()
        self._session: Optional[SessionHandle] = None
        self._observer: Optional[RequestObserver] = None
        self._tasks: Set[asyncio.Task] = set()
        # arm/disarm のたびに増え、古い取得結果を捨てるのに使う
        self._generation = 0

    async def __aenter__(self):
        """非同期コンテキストマネージャーの開始."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """非同期コンテキストマネージャーの終了."""
        await self.aclose()

    async def aclose(self) -> None:
        self.disarm()
        await self.client.aclose()

    @property
    def armed(self) -> bool:
        return self._session is not None

    @property
    def processed_urls(self) -> Set[str]:
        return set(self._processed_urls)

    def cached_keys(self) -> List[CacheKey]:
        return list(self._cache)

    def arm(self, session: SessionHandle, observer: Optional[RequestObserver] = None) -> None:
        """
        セッションに対して監視を開始する.

        以前の監視は切断し、処理済みURLとキャッシュはリセットする。

        Args:
            session: 発見済みのプレーヤーセッション
            observer: 完了リクエストの監視
        """
        logger.debug("SubtitleCache.arm() called")

        if session is None:
            logger.error("arm: player session required")
            return

        self._detach_observer()
        self._cancel_tasks()
        self._generation += 1
        self._session = session
        self._processed_urls = set()
        self._cache = {}

        if observer is not None:
            try:
                observer.attach(self.handle_entries)
                self._observer = observer
            except Exception as e:
                logger.error(f"Request observer setup failed: {e}")
                return

        logger.info(f"Subtitle detection armed for session {session.session_id}")

    def disarm(self) -> None:
        """監視を停止し、キャッシュと処理済みURLを消去する."""
        logger.debug("SubtitleCache.disarm() called")

        self._detach_observer()
        self._cancel_tasks()
        self._generation += 1
        self._processed_urls.clear()
        self._cache = {}
        self._session = None

        logger.info("Subtitle fetching cleaned up")

    async def drain(self) -> None:
        """実行中の再取得が全て終わるまで待つ."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def lookup(self, key: CacheKey) -> CueList:
        """キャッシュされたキューを返す（無ければ空のリスト）."""
        cached = self._cache.get(key)
        return cached if cached is not None else CueList()

    def handle_entries(self, entries: Iterable[Any]) -> None:
        """
        完了したリクエストの通知を処理する.

        Args:
            entries: URL文字列、または name 属性にURLを持つエントリ
        """
        try:
            for entry in entries:
                url = entry if isinstance(entry, str) else read_member(entry, 'name')
                if not is_subtitle_request(url):
                    continue
                if url in self._processed_urls:
                    continue

                self._processed_urls.add(url)
                logger.info(f"TTML request detected: {url}")

                task = asyncio.ensure_future(self.fetch_and_store(url, self._generation))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
        except Exception as e:
            logger.error(f"Error in request observer callback: {e}")

    async def fetch_and_store(self, url: str, generation: Optional[int] = None) -> Optional[CueList]:
        """
        URLを再取得して解析し、キャッシュに格納する.

        Args:
            url: 字幕ドキュメントのURL
            generation: 取得開始時の世代（省略時は現在の世代）

        Returns:
            格納したキューのリスト。失敗時や世代が変わった場合はNone
        """
        if generation is None:
            generation = self._generation

        try:
            raw = await self._fetch_document(url)
        except CaptionFetchError as e:
            session_id = self._session.session_id if self._session is not None else None
            self.error_handler.log_error(
                e, ErrorHandler.create_context(operation="fetch_and_store", session_id=session_id)
            )
            return None

        if generation != self._generation:
            logger.debug(f"Discarding TTML fetched for a previous session: {url}")
            return None

        return self.store_document(raw, url)

    def store_document(self, raw: Union[bytes, str], url: Optional[str] = None) -> Optional[CueList]:
        """
        ドキュメントを解析して現在のセッションのキーで格納する.

        Args:
            raw: ドキュメントのバイト列または文字列
            url: ログ用の取得元URL

        Returns:
            格納したキューのリスト。格納しなかった場合はNone
        """
        result = self.parser.parse_bytes(raw) if isinstance(raw, bytes) else self.parser.parse(raw)

        if result.is_empty():
            logger.warning(f"TTML parsing returned no cues: {url}")
            return None

        if self._session is None:
            logger.warning("Cannot get video ID: player session not available")
            return None

        content_id = self._session.content_id()
        if content_id is None:
            logger.warning("Cannot get video ID from player session")
            return None

        key = CacheKey(content_id=content_id, language=result.language or UNKNOWN_LANGUAGE)
        self._cache[key] = result

        logger.info(f"Cached {len(result.cues)} subtitles for {key}")
        return result

    async def request_fetch(self, overlay_track: Optional[SubtitleTrack],
                            current_track: Optional[SubtitleTrack]) -> bool:
        """
        オーバーレイ用トラックに一時的に切り替えて字幕の取得を促す.

        ホストはトラックが有効になったときだけドキュメントを取得するため、
        切り替えて監視に取得を捕まえさせ、少し待ってから元のトラックに戻す。
        待機がキャンセルされた場合も元に戻す。

        Args:
            overlay_track: オーバーレイ言語のトラック
            current_track: 現在有効なトラック

        Returns:
            切り替えを行った場合True
        """
        session = self._session
        if session is None:
            logger.warning("Cannot trigger fetch: player session not available")
            return False

        if overlay_track is None:
            logger.warning("Overlay track not provided, skipping fetch")
            return False

        try:
            session.set_text_track(overlay_track)
        except TrackSwitchError as e:
            self.error_handler.log_error(e)
            return False

        logger.info(f"Switched to {overlay_track.bcp47} track to trigger TTML fetch")

        try:
            await self.sleep(self.revert_delay)
        finally:
            if current_track is not None:
                try:
                    session.set_text_track(current_track)
                    logger.info("Reverted to original subtitle track")
                except TrackSwitchError as e:
                    self.error_handler.log_error(e)

        return True

    async def _fetch_document(self, url: str) -> bytes:
        try:
            response = await self.client.get(url)
            response.raise_for_status()
            return response.content
        except httpx.HTTPStatusError as e:
            raise CaptionFetchError(
                f"HTTP Error {e.response.status_code}", url=url, status_code=e.response.status_code
            ) from e
        except httpx.RequestError as e:
            raise CaptionFetchError(
                f"Request Error: {str(e)}", url=url, timeout=self.request_timeout
            ) from e
        except httpx.InvalidURL as e:
            raise CaptionFetchError(f"Invalid URL: {str(e)}", url=url) from e

    def _detach_observer(self) -> None:
        if self._observer is None:
            return
        try:
            self._observer.detach()
        except Exception as e:
            logger.error(f"Error detaching request observer: {e}")
        self._observer = None

    def _cancel_tasks(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
