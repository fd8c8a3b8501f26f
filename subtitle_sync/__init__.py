"""
字幕同期システム - モジュールパッケージ

一時停止位置に合わせて第二言語の字幕を表示するための、TTML解析、
キュー検索、セッション探索、字幕キャッシュ、ライフサイクル管理を提供します。
"""

from .config_handler import OverlaySettings, SyncConfig, ConfigHandler
from .cue_locator import find_active
from .error_handler import (
    SubtitleSyncError,
    CaptionParseError,
    CaptionFetchError,
    HostAccessError,
    TrackSwitchError,
    ErrorHandler
)
from .host_adapter import NetflixHostAdapter, SessionHandle
from .lifecycle import LifecycleCoordinator, LifecycleOptions, create_coordinator
from .models import CacheKey, Cue, CueList, LifecycleState, SubtitleTrack, TrackSelection
from .session_discovery import DiscoveryOptions, SessionDiscovery, is_watch_session
from .subtitle_cache import SubtitleCache, is_subtitle_request
from .ttml_parser import TTMLParser, parse_ttml

__all__ = [
    'OverlaySettings',
    'SyncConfig',
    'ConfigHandler',
    'find_active',
    'SubtitleSyncError',
    'CaptionParseError',
    'CaptionFetchError',
    'HostAccessError',
    'TrackSwitchError',
    'ErrorHandler',
    'NetflixHostAdapter',
    'SessionHandle',
    'LifecycleCoordinator',
    'LifecycleOptions',
    'create_coordinator',
    'CacheKey',
    'Cue',
    'CueList',
    'LifecycleState',
    'SubtitleTrack',
    'TrackSelection',
    'DiscoveryOptions',
    'SessionDiscovery',
    'is_watch_session',
    'SubtitleCache',
    'is_subtitle_request',
    'TTMLParser',
    'parse_ttml',
]

__version__ = "1.0.0"
