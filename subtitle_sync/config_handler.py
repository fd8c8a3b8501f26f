"""
設定管理モジュール

オーバーレイ表示のユーザー設定と、セッション探索・字幕取得の動作設定を
管理し、検証を行います。
"""

import os
import re
import json
import logging
from dataclasses import dataclass, field, fields, asdict
from typing import Any, Dict, Optional, Union

from .session_discovery import DiscoveryOptions


@dataclass
class OverlaySettings:
    """ユーザー設定を格納するデータクラス"""
    overlay_language: str = 'pl'
    prefer_closed_captions: bool = False
    enabled: bool = True

    def __post_init__(self):
        """初期化後の検証"""
        if not isinstance(self.overlay_language, str) or not self.overlay_language.strip():
            raise ValueError("オーバーレイ言語は空でない文字列である必要があります")
        self.overlay_language = self.overlay_language.strip()


@dataclass
class SyncConfig:
    """同期処理の動作設定を格納するデータクラス"""
    discovery: DiscoveryOptions = field(default_factory=DiscoveryOptions)
    max_session_retries: int = 10
    stale_session_delay_ms: int = 500
    revert_delay_ms: int = 500
    fetch_timeout: float = 10.0

    def __post_init__(self):
        """初期化後の検証"""
        if self.max_session_retries < 1:
            raise ValueError("セッション再試行回数は1以上である必要があります")
        if self.stale_session_delay_ms < 0 or self.revert_delay_ms < 0:
            raise ValueError("待機時間は0以上である必要があります")
        if self.fetch_timeout <= 0:
            raise ValueError("タイムアウト値は正の数である必要があります")


class ConfigHandler:
    """設定管理クラス"""

    # BCP 47 の簡易パターン（例: pl, en-US, zh-Hant, es-419）
    LANGUAGE_TAG_PATTERN = re.compile(r'^[A-Za-z]{2,3}(-[A-Za-z0-9]{2,8})*$')

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def validate_language_tag(self, tag: str) -> bool:
        """
        言語タグの検証

        Args:
            tag: 検証対象の言語タグ

        Returns:
            bool: 検証結果
        """
        if not tag or not isinstance(tag, str):
            return False
        return bool(self.LANGUAGE_TAG_PATTERN.match(tag.strip()))

    def validate_settings(self, settings: OverlaySettings) -> bool:
        """
        ユーザー設定の検証

        Args:
            settings: 検証対象の設定

        Returns:
            bool: 検証結果（True: 成功, False: 失敗）
        """
        if not self.validate_language_tag(settings.overlay_language):
            self.logger.error(f"無効なオーバーレイ言語: {settings.overlay_language}")
            return False

        if not isinstance(settings.prefer_closed_captions, bool):
            self.logger.error(f"prefer_closed_captions が真偽値ではありません: {settings.prefer_closed_captions!r}")
            return False

        return True

    def merge_injected_settings(self, injected: Union[str, Dict[str, Any], None]) -> OverlaySettings:
        """
        注入された設定をデフォルト値に重ねる

        設定はJSON文字列または辞書として渡される。camelCase のキー
        （overlayLanguage, preferClosedCaptions）も受け付ける。
        未知のキーは無視し、解析や検証に失敗した場合はデフォルト値を返す。

        Args:
            injected: 注入された設定

        Returns:
            OverlaySettings: マージ済みの設定
        """
        defaults = OverlaySettings()

        if injected is None or injected == '':
            self.logger.warning("注入された設定がありません。デフォルト値を使用します")
            return defaults

        try:
            data = json.loads(injected) if isinstance(injected, str) else dict(injected)
        except (TypeError, ValueError) as e:
            self.logger.error(f"注入された設定の読み込みに失敗: {str(e)}")
            return defaults

        if not isinstance(data, dict):
            self.logger.error(f"注入された設定がオブジェクトではありません: {type(data).__name__}")
            return defaults

        aliases = {
            'overlayLanguage': 'overlay_language',
            'preferClosedCaptions': 'prefer_closed_captions',
        }
        known = {f.name for f in fields(OverlaySettings)}
        merged = asdict(defaults)
        for key, value in data.items():
            name = aliases.get(key, key)
            if name in known:
                merged[name] = value

        try:
            settings = OverlaySettings(**merged)
        except ValueError as e:
            self.logger.error(f"注入された設定が無効: {str(e)}")
            return defaults

        if not self.validate_settings(settings):
            return defaults

        self.logger.info(f"注入された設定を使用: {settings}")
        return settings

    def load_from_env(self) -> Optional[SyncConfig]:
        """
        環境変数から動作設定を読み込み

        Returns:
            SyncConfig: 設定オブジェクト（失敗時はNone）
        """
        try:
            discovery = DiscoveryOptions(
                max_attempts=int(os.getenv('DISCOVERY_MAX_ATTEMPTS', '20')),
                initial_delay_ms=int(os.getenv('DISCOVERY_INITIAL_DELAY_MS', '250')),
                backoff_factor=float(os.getenv('DISCOVERY_BACKOFF_FACTOR', '1.5')),
                max_delay_ms=int(os.getenv('DISCOVERY_MAX_DELAY_MS', '2000')),
            )
            return SyncConfig(
                discovery=discovery,
                max_session_retries=int(os.getenv('MAX_SESSION_RETRIES', '10')),
                fetch_timeout=float(os.getenv('FETCH_TIMEOUT', '10')),
            )
        except ValueError as e:
            self.logger.error(f"環境変数の値が無効: {str(e)}")
            return None

    def load_settings_from_env(self) -> OverlaySettings:
        """
        環境変数からユーザー設定を読み込み

        Returns:
            OverlaySettings: 設定オブジェクト（未設定の項目はデフォルト値）
        """
        injected: Dict[str, Any] = {}

        language = os.getenv('OVERLAY_LANGUAGE')
        if language:
            injected['overlay_language'] = language

        prefer_cc = os.getenv('PREFER_CLOSED_CAPTIONS')
        if prefer_cc is not None:
            injected['prefer_closed_captions'] = prefer_cc.strip().lower() in {'1', 'true', 'yes'}

        return self.merge_injected_settings(injected)
