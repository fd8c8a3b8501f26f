"""
プレーヤーセッション探索モジュール

ホストのプレーヤーAPIは非同期に読み込まれるため、ページ読み込み直後には
存在しないことがある。準備ができるまで指数バックオフでポーリングする。
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol

from .error_handler import ErrorHandler, HostAccessError
from .host_adapter import SessionHandle

logger = logging.getLogger(__name__)


def is_watch_session(session_id: Optional[str]) -> bool:
    """
    セッションIDが再生中の視聴セッションらしいかを判定する

    ページ遷移の途中では視聴以外のセッションが先に見つかることがある。
    判定はID文字列の部分一致による経験則。
    """
    return bool(session_id) and 'watch' in session_id


@dataclass
class DiscoveryOptions:
    """セッション探索の再試行設定"""
    max_attempts: int = 20
    initial_delay_ms: int = 250
    backoff_factor: float = 1.5
    max_delay_ms: int = 2000

    def __post_init__(self):
        """初期化後の検証"""
        if self.max_attempts < 1:
            raise ValueError("試行回数は1以上である必要があります")
        if self.initial_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("待機時間は0以上である必要があります")
        if self.backoff_factor < 1:
            raise ValueError("バックオフ係数は1以上である必要があります")

    def delays(self):
        """試行間の待機時間（ミリ秒）を順に返す"""
        delay = self.initial_delay_ms
        for _ in range(self.max_attempts - 1):
            yield delay
            # 250 → 375 → 562 → 843 → ...
            delay = min(math.floor(delay * self.backoff_factor), self.max_delay_ms)


class SessionSource(Protocol):
    def try_snapshot(self) -> Optional[SessionHandle]:
        ...


class SessionDiscovery:
    """セッションが得られるまでポーリングするクラス"""

    def __init__(
        self,
        source: SessionSource,
        options: Optional[DiscoveryOptions] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """
        Args:
            source: セッション状態を読み取るアダプター
            options: デフォルトの再試行設定
            sleep: 秒数を受け取る待機関数
        """
        self.source = source
        self.options = options or DiscoveryOptions()
        self.sleep = sleep
        self.error_handler = ErrorHandler(__name__)

    async def discover(self, options: Optional[DiscoveryOptions] = None) -> Optional[SessionHandle]:
        """
        セッションを探索する

        Args:
            options: この呼び出しだけの再試行設定

        Returns:
            SessionHandle: 見つかったセッション
            None: 全ての試行が失敗した場合（呼び出し側で再試行しない）
        """
        options = options or self.options
        delays = options.delays()

        for attempt in range(1, options.max_attempts + 1):
            try:
                handle = self.source.try_snapshot()
            except HostAccessError as e:
                e.context['attempt'] = attempt
                self.error_handler.log_error(
                    e, ErrorHandler.create_context(operation='discover', max_attempts=options.max_attempts)
                )
                handle = None

            if handle is not None:
                logger.info(f"Player API ready: session_id={handle.session_id} (attempt {attempt})")
                return handle

            logger.debug(f"Player API not ready (attempt {attempt}/{options.max_attempts})")

            delay_ms = next(delays, None)
            if delay_ms is not None:
                await self.sleep(delay_ms / 1000)

        logger.warning(f"Player API not ready after {options.max_attempts} attempts")
        return None
