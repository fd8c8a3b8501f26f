#!/usr/bin/env python3
"""
字幕同期MCPサーバー
fastmcpを使用したMCPサーバー実装

TTML字幕ドキュメントの解析・検索・分析ツールを提供する。

使用例:
1. 一時停止位置の字幕を調べる:
   cue = find_cue(ttml_content=content, timestamp_ms=83500)

2. CDNから取得して解析:
   result = fetch_ttml(url="https://...oca.nflxvideo.net/?o=...")
"""

import os
import logging
from typing import Optional, Dict
from datetime import datetime

import httpx
from fastmcp import FastMCP

from subtitle_sync import __version__
from subtitle_sync.cue_locator import find_active
from subtitle_sync.error_handler import CaptionFetchError, ErrorHandler
from subtitle_sync.models import Cue, CueList
from subtitle_sync.subtitle_cache import is_subtitle_request
from subtitle_sync.ttml_parser import TTMLParser

# ログ設定
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# 環境変数からデフォルト値を取得
DEFAULT_FETCH_TIMEOUT = float(os.getenv('FETCH_TIMEOUT', '10'))
DEFAULT_PREVIEW_ENTRIES = int(os.getenv('PREVIEW_ENTRIES', '5'))

mcp = FastMCP(
    "subtitle-sync",
    instructions="TTML字幕ドキュメントを解析し、再生位置に対応する字幕を検索するMCPサーバー。"
)

parser = TTMLParser()
error_handler = ErrorHandler(__name__)

# 利用統計を保持
usage_stats = {
    "documents_parsed": 0,
    "cues_parsed": 0,
    "lookups": 0,
    "fetches": 0,
    "last_request": None,
    "errors": 0
}


def format_ms(milliseconds: int) -> str:
    """ミリ秒を HH:MM:SS.mmm 形式に変換"""
    seconds, ms = divmod(milliseconds, 1000)
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}.{ms:03d}"


def cue_to_dict(cue: Cue) -> Dict:
    return {
        "text": cue.text,
        "start_ms": cue.start_ms,
        "end_ms": cue.end_ms,
        "time": f"{format_ms(cue.start_ms)} --> {format_ms(cue.end_ms)}"
    }


def parse_document(ttml_content: str) -> CueList:
    """TTMLを解析して統計を更新する"""
    result = parser.parse(ttml_content)
    usage_stats["documents_parsed"] += 1
    usage_stats["cues_parsed"] += len(result.cues)
    usage_stats["last_request"] = datetime.now().isoformat()
    return result


def summarize_cues(cue_list: CueList, detailed: bool = False) -> Dict:
    """
    キューのリストを分析する

    Args:
        cue_list: 解析済みのキュー
        detailed: 詳細分析を行うか

    Returns:
        dict: 分析結果
    """
    cues = cue_list.cues
    if not cues:
        return {
            "valid": False,
            "error": "No valid TTML cues found",
            "cue_count": 0
        }

    total_chars = sum(len(cue.text) for cue in cues)
    first_start = cues[0].start_ms
    last_end = max(cue.end_ms for cue in cues)

    result = {
        "valid": True,
        "language": cue_list.language,
        "cue_count": len(cues),
        "total_characters": total_chars,
        "average_characters": round(total_chars / len(cues), 1),
        "total_duration_seconds": round((last_end - first_start) / 1000, 2),
        "first_timestamp": format_ms(first_start),
        "last_timestamp": format_ms(last_end)
    }

    if detailed:
        line_counts = [len(cue.text.split('\n')) for cue in cues]
        durations = [cue.duration_ms() for cue in cues]
        overlapping = sum(
            1 for previous, current in zip(cues, cues[1:])
            if current.start_ms < previous.end_ms
        )

        result["detailed_stats"] = {
            "max_lines_per_cue": max(line_counts),
            "avg_lines_per_cue": round(sum(line_counts) / len(line_counts), 1),
            "multiline_cues": cue_list.multiline_count(),
            "shortest_cue_ms": min(durations),
            "longest_cue_ms": max(durations),
            "overlapping_cues": overlapping
        }

    return result


def preview_cues(cue_list: CueList, num_entries: int = DEFAULT_PREVIEW_ENTRIES) -> Dict:
    """最初と最後の数個のキューを返す"""
    cues = cue_list.cues
    preview = {
        "total_entries": len(cues),
        "start": [cue_to_dict(cue) for cue in cues[:num_entries]]
    }
    if len(cues) > num_entries:
        preview["end"] = [cue_to_dict(cue) for cue in cues[max(num_entries, len(cues) - num_entries):]]
    return preview


async def download_document(url: str, timeout: Optional[float] = None) -> bytes:
    """
    字幕ドキュメントをダウンロードする

    Raises:
        CaptionFetchError: HTTPエラーまたは接続エラー
    """
    timeout = timeout or DEFAULT_FETCH_TIMEOUT
    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.content
    except httpx.HTTPStatusError as e:
        raise CaptionFetchError(
            f"HTTP Error {e.response.status_code}", url=url, status_code=e.response.status_code
        ) from e
    except httpx.RequestError as e:
        raise CaptionFetchError(f"Request Error: {str(e)}", url=url, timeout=timeout) from e
    except httpx.InvalidURL as e:
        raise CaptionFetchError(f"Invalid URL: {str(e)}", url=url) from e


@mcp.tool(
    description="""TTML字幕ドキュメントを解析して、開始時刻順のキューと言語を返す。

注意事項:
- 時刻は "<整数>t" のティック表記のみ対応（ttp:tickRate、既定値10000000）
- 時刻が不正な<p>は読み飛ばされます
- <br/> は改行として保持されます"""
)
async def parse_ttml(ttml_content: str, include_cues: bool = True) -> dict:
    """
    TTMLを解析する

    Args:
        ttml_content: TTML形式の文字列
        include_cues: キューの一覧を結果に含めるか

    Returns:
        dict: 言語、キュー数、キュー一覧
    """
    result = parse_document(ttml_content)
    payload = {
        "language": result.language,
        "cue_count": len(result.cues),
        "multiline_cues": result.multiline_count()
    }
    if include_cues:
        payload["cues"] = [cue_to_dict(cue) for cue in result.cues]
    return payload


@mcp.tool(
    description="指定した再生位置（ミリ秒）に表示されている字幕を検索する。"
)
async def find_cue(ttml_content: str, timestamp_ms: int) -> dict:
    """
    再生位置の字幕を検索

    Args:
        ttml_content: TTML形式の文字列
        timestamp_ms: 再生位置（ミリ秒）

    Returns:
        dict: 見つかったキュー（無ければ found=False）
    """
    result = parse_document(ttml_content)
    usage_stats["lookups"] += 1

    cue = find_active(timestamp_ms, result)
    if cue is None:
        return {"found": False, "timestamp": format_ms(max(timestamp_ms, 0)), "language": result.language}
    return {"found": True, "language": result.language, "cue": cue_to_dict(cue)}


@mcp.tool(
    description="""TTMLの検証と分析を行う。
    キュー数、総時間、平均文字数などの統計情報を提供します。"""
)
async def analyze_ttml(ttml_content: str, detailed: bool = False, preview: bool = False) -> dict:
    """
    TTMLの内容を分析

    Args:
        ttml_content: 分析対象のTTML
        detailed: 詳細分析を行うか
        preview: 最初と最後のキューを含めるか

    Returns:
        dict: 分析結果
    """
    result = parse_document(ttml_content)
    summary = summarize_cues(result, detailed)
    if preview and summary["valid"]:
        summary["preview"] = preview_cues(result)
    return summary


@mcp.tool(
    description="""CDNのURLから字幕ドキュメントを取得して解析する。"""
)
async def fetch_ttml(url: str, timeout: Optional[float] = None) -> dict:
    """
    URLから取得して解析

    Args:
        url: 字幕ドキュメントのURL
        timeout: タイムアウト（秒）

    Returns:
        dict: 分析結果、または error
    """
    usage_stats["fetches"] += 1
    if not is_subtitle_request(url):
        logger.warning(f"URL does not look like a caption endpoint: {url}")

    try:
        raw = await download_document(url, timeout)
    except CaptionFetchError as e:
        usage_stats["errors"] += 1
        return {"valid": False, "error": error_handler.handle_error(e)}

    result = parse_document(parser.decode_document(raw))
    summary = summarize_cues(result)
    summary["url"] = url
    return summary


@mcp.tool(
    description="サーバー情報と統計を取得"
)
async def get_server_info() -> dict:
    """
    サーバー情報と統計を取得

    Returns:
        dict: サーバーの名前、バージョン、統計情報
    """
    return {
        "name": "subtitle-sync",
        "version": __version__,
        "description": "TTML caption parsing and paused-position lookup",
        "configuration": {
            "default_fetch_timeout": DEFAULT_FETCH_TIMEOUT,
            "default_preview_entries": DEFAULT_PREVIEW_ENTRIES
        },
        "statistics": usage_stats,
        "capabilities": [
            "TTML parsing with tick-based timing",
            "Line break preservation",
            "Active cue lookup by timestamp",
            "Caption document download"
        ]
    }


def main():
    """メインエントリーポイント"""
    # MCPサーバーを起動（stdioトランスポート使用）
    mcp.run()


if __name__ == "__main__":
    main()
