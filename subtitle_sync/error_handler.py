"""
エラーハンドリングモジュール

字幕同期システムの例外クラスとエラー処理機能を提供します。
各コンポーネントは境界で例外を捕捉し、ここでログに記録してから
安全なデフォルト値（空リスト、None、何もしない）を返します。
"""

import logging
import traceback
import datetime
from typing import Dict, Any


class SubtitleSyncError(Exception):
    """字幕同期システムの基底例外クラス"""

    def __init__(self, message: str, error_code: str = None, context: Dict[str, Any] = None):
        """
        初期化

        Args:
            message: エラーメッセージ
            error_code: エラーコード
            context: エラーコンテキスト情報
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}
        self.timestamp = datetime.datetime.now()


class CaptionParseError(SubtitleSyncError):
    """TTML字幕ドキュメントの解析エラー"""

    def __init__(self, message: str, document_length: int = None, node_index: int = None):
        """
        解析エラーの初期化

        Args:
            message: エラーメッセージ
            document_length: 解析対象ドキュメントの文字数
            node_index: エラーが発生した<p>ノードの番号
        """
        context = {}
        if document_length is not None:
            context['document_length'] = document_length
        if node_index is not None:
            context['node_index'] = node_index

        super().__init__(message, "CAPTION_PARSE_ERROR", context)


class CaptionFetchError(SubtitleSyncError):
    """字幕ドキュメントの再取得エラー"""

    def __init__(self, message: str, url: str = None, status_code: int = None, timeout: float = None):
        """
        取得エラーの初期化

        Args:
            message: エラーメッセージ
            url: 取得先URL
            status_code: HTTPステータスコード
            timeout: タイムアウト時間
        """
        context = {}
        if url:
            context['url'] = url
        if status_code is not None:
            context['status_code'] = status_code
        if timeout is not None:
            context['timeout'] = timeout

        super().__init__(message, "CAPTION_FETCH_ERROR", context)


class HostAccessError(SubtitleSyncError):
    """外部プレーヤーのオブジェクトグラフ読み取りエラー"""

    def __init__(self, message: str, path: str = None, attempt: int = None):
        """
        ホストアクセスエラーの初期化

        Args:
            message: エラーメッセージ
            path: 読み取り中だったオブジェクトパス
            attempt: 何回目の試行か
        """
        context = {}
        if path:
            context['path'] = path
        if attempt is not None:
            context['attempt'] = attempt

        super().__init__(message, "HOST_ACCESS_ERROR", context)


class TrackSwitchError(SubtitleSyncError):
    """字幕トラック切り替えエラー"""

    def __init__(self, message: str, track_id: Any = None, language: str = None):
        """
        トラック切り替えエラーの初期化

        Args:
            message: エラーメッセージ
            track_id: 切り替え先トラックID
            language: 切り替え先トラックの言語
        """
        context = {}
        if track_id is not None:
            context['track_id'] = track_id
        if language:
            context['language'] = language

        super().__init__(message, "TRACK_SWITCH_ERROR", context)


class ErrorHandler:
    """エラー処理クラス"""

    def __init__(self, logger_name: str = __name__):
        """
        初期化

        Args:
            logger_name: ロガー名
        """
        self.logger = logging.getLogger(logger_name)

    def log_error(self, error: Exception, context: Dict[str, Any] = None) -> None:
        """
        エラーをログに記録

        解析エラーとホストアクセスエラーは一時的・部分的な劣化として
        warning、取得失敗とトラック切り替え失敗は error で記録する。

        Args:
            error: ログに記録する例外
            context: 追加のコンテキスト情報
        """
        try:
            error_info = {
                'error_type': error.__class__.__name__,
                'error_message': str(error),
                'timestamp': datetime.datetime.now().isoformat(),
            }

            if isinstance(error, SubtitleSyncError):
                error_info.update({
                    'error_code': error.error_code,
                    'error_context': error.context,
                })

            if context:
                error_info['additional_context'] = context

            # 例外処理中でなければ "NoneType: None" になる
            stack_trace = traceback.format_exc()
            if not stack_trace.startswith('NoneType'):
                error_info['stack_trace'] = stack_trace

            if isinstance(error, (CaptionFetchError, TrackSwitchError)):
                self.logger.error(f"Subtitle pipeline failure: {error_info}")
            elif isinstance(error, (CaptionParseError, HostAccessError)):
                self.logger.warning(f"Degraded result: {error_info}")
            else:
                self.logger.error(f"Unexpected error: {error_info}")

        except Exception as log_error:
            self.logger.critical(f"ログ記録中にエラーが発生: {str(log_error)}")
            self.logger.critical(f"元のエラー: {str(error)}")

    def format_user_message(self, error: Exception) -> str:
        """
        ツール利用者向けのエラーメッセージ生成

        Args:
            error: フォーマット対象の例外

        Returns:
            str: 読みやすいエラーメッセージ
        """
        try:
            if isinstance(error, CaptionParseError):
                base_message = "字幕ドキュメントの解析に失敗しました。"
                if 'node_index' in error.context:
                    base_message += f" (ノード: {error.context['node_index']})"
                return base_message

            elif isinstance(error, CaptionFetchError):
                base_message = "字幕ドキュメントの取得に失敗しました。"
                if 'url' in error.context:
                    base_message += f" 取得先: {error.context['url']}"
                if 'status_code' in error.context:
                    base_message += f" (ステータスコード: {error.context['status_code']})"
                return base_message

            elif isinstance(error, HostAccessError):
                base_message = "プレーヤーセッションにアクセスできませんでした。"
                if 'path' in error.context:
                    base_message += f" パス: {error.context['path']}"
                return base_message

            elif isinstance(error, TrackSwitchError):
                base_message = "字幕トラックの切り替えに失敗しました。"
                if 'language' in error.context:
                    base_message += f" 言語: {error.context['language']}"
                return base_message

            elif isinstance(error, SubtitleSyncError):
                return f"処理中にエラーが発生しました: {error.message}"

            else:
                return f"予期しないエラーが発生しました: {str(error)}"

        except Exception:
            return "エラーメッセージの生成に失敗しました。"

    def handle_error(self, error: Exception, context: Dict[str, Any] = None) -> str:
        """
        エラーの総合的な処理

        Args:
            error: 処理対象の例外
            context: 追加のコンテキスト情報

        Returns:
            str: 利用者向けメッセージ
        """
        self.log_error(error, context)
        return self.format_user_message(error)

    @staticmethod
    def create_context(operation: str = None, url: str = None,
                       session_id: str = None, **kwargs) -> Dict[str, Any]:
        """
        コンテキスト情報を作成

        Args:
            operation: 実行中の操作
            url: 処理中のURL
            session_id: 対象のプレーヤーセッションID
            **kwargs: その他の情報

        Returns:
            Dict[str, Any]: コンテキスト辞書
        """
        context = {}

        if operation:
            context['operation'] = operation
        if url:
            context['url'] = url
        if session_id:
            context['session_id'] = session_id

        context.update(kwargs)

        return context
