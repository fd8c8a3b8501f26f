"""
TTML字幕ドキュメントの解析を行うモジュール

このモジュールはストリーミングCDNが配信するTTML (Timed Text Markup Language)
形式の字幕ドキュメントを解析し、開始時刻順に並んだキューのリストと
ドキュメントの言語を返す機能を提供する。
"""

import logging
import math
import re
import xml.etree.ElementTree as ET
from fractions import Fraction
from typing import Iterator, List, Optional, Union

import chardet

from .error_handler import CaptionParseError, ErrorHandler
from .models import Cue, CueList

logger = logging.getLogger(__name__)

DEFAULT_TICK_RATE = 10_000_000


def _local_name(name) -> str:
    """名前空間を取り除いたタグ名・属性名を小文字で返す"""
    if not isinstance(name, str):
        # コメントや処理命令
        return ''
    return name.rsplit('}', 1)[-1].rsplit(':', 1)[-1].lower()


def _attribute(element: ET.Element, name: str) -> Optional[str]:
    """名前空間に関係なく属性値を取得する"""
    wanted = name.lower()
    for key, value in element.attrib.items():
        if _local_name(key) == wanted:
            return value
    return None


class TTMLParser:
    """TTMLドキュメントの解析を行うクラス"""

    # "513429584t" 形式のティック値
    TICK_PATTERN = re.compile(r'^\s*(\d+)t\s*$')

    HORIZONTAL_SPACE = re.compile(r'[^\S\n]+')
    SPACE_AROUND_NEWLINE = re.compile(r' *\n *')
    EXCESS_NEWLINES = re.compile(r'\n{3,}')

    def __init__(self):
        """TTMLParserのインスタンスを初期化する"""
        self.error_handler = ErrorHandler(__name__)

    def decode_document(self, raw: Union[bytes, str]) -> str:
        """取得したバイト列を文字列にデコードする

        Args:
            raw (bytes): 字幕ドキュメントのバイト列

        Returns:
            str: デコードされた文字列（UTF-8を優先）
        """
        if isinstance(raw, str):
            return raw
        if not raw:
            return ''

        detected = chardet.detect(raw)
        encoding = detected['encoding'] if detected['encoding'] else 'utf-8'

        # UTF-8を優先する
        if encoding.lower() in ['ascii', 'utf-8']:
            encoding = 'utf-8'

        try:
            return raw.decode(encoding, errors='replace')
        except LookupError:
            logger.warning(f"Unknown encoding detected ({encoding}), falling back to utf-8")
            return raw.decode('utf-8', errors='replace')

    def ticks_to_ms(self, value: Optional[str], tick_rate: int = DEFAULT_TICK_RATE) -> Optional[int]:
        """ティック表記の時刻をミリ秒に変換する

        round(ticks / tick_rate * 1000) を有理数で計算し、0.5は切り上げる。

        Args:
            value (str): "<整数>t" 形式の時刻
            tick_rate (int): 1秒あたりのティック数

        Returns:
            Optional[int]: ミリ秒。形式が不正な場合はNone
        """
        if not isinstance(value, str):
            return None
        match = self.TICK_PATTERN.match(value)
        if not match:
            return None

        milliseconds = Fraction(int(match.group(1)) * 1000, tick_rate)
        return math.floor(milliseconds + Fraction(1, 2))

    def normalize_text(self, text: str) -> str:
        """抽出したテキストの空白と改行を整える

        Args:
            text (str): 抽出直後のテキスト

        Returns:
            str: 正規化されたテキスト
        """
        text = text.replace('\r', '')
        text = self.HORIZONTAL_SPACE.sub(' ', text)
        text = self.SPACE_AROUND_NEWLINE.sub('\n', text)
        text = self.EXCESS_NEWLINES.sub('\n\n', text)
        return text.strip()

    def extract_text(self, element: ET.Element) -> str:
        """<p>要素からテキストを抽出する（<br/>は改行として保持）

        Args:
            element (ET.Element): <p>要素

        Returns:
            str: 正規化済みのテキスト
        """
        parts: List[str] = []
        self._collect_text(element, parts)
        return self.normalize_text(''.join(parts))

    def _collect_text(self, element: ET.Element, parts: List[str]) -> None:
        if element.text:
            parts.append(element.text)
        for child in element:
            if _local_name(child.tag) == 'br':
                parts.append('\n')
            self._collect_text(child, parts)
            if child.tail:
                parts.append(child.tail)

    def _read_tick_rate(self, root: ET.Element) -> int:
        raw_rate = _attribute(root, 'tickRate')
        if raw_rate is None:
            return DEFAULT_TICK_RATE
        try:
            tick_rate = int(raw_rate.strip())
        except ValueError:
            logger.warning(f"Invalid tickRate {raw_rate!r}, using default {DEFAULT_TICK_RATE}")
            return DEFAULT_TICK_RATE
        if tick_rate <= 0:
            logger.warning(f"Non-positive tickRate {tick_rate}, using default {DEFAULT_TICK_RATE}")
            return DEFAULT_TICK_RATE
        return tick_rate

    def _read_language(self, root: ET.Element) -> Optional[str]:
        language = _attribute(root, 'lang')
        if not language:
            return None
        # CDNは米国英語を "en" とだけ表記する
        return 'en-US' if language == 'en' else language

    def _paragraphs(self, root: ET.Element) -> Iterator[ET.Element]:
        seen = set()
        for body in root.iter():
            if _local_name(body.tag) != 'body':
                continue
            for element in body.iter():
                if _local_name(element.tag) == 'p' and id(element) not in seen:
                    seen.add(id(element))
                    yield element

    def _parse_root(self, document: str) -> ET.Element:
        try:
            return ET.fromstring(document)
        except ET.ParseError as e:
            raise CaptionParseError(
                f"XML parsing error: {e}", document_length=len(document)
            ) from e

    def parse(self, document: str) -> CueList:
        """TTMLドキュメントを解析してキューのリストを返す

        例外は送出しない。ドキュメント全体が不正な場合は空のリストと
        言語None、個々の<p>の時刻が不正な場合はその<p>だけを読み飛ばす。

        Args:
            document (str): TTML形式の文字列

        Returns:
            CueList: 開始時刻順に並んだキューと検出された言語
        """
        if not document or not isinstance(document, str):
            logger.warning("parse: Empty or invalid TTML document")
            return CueList()

        try:
            root = self._parse_root(document)
            language = self._read_language(root)
            tick_rate = self._read_tick_rate(root)

            cues: List[Cue] = []
            skipped = 0
            paragraph_count = 0
            for node_index, paragraph in enumerate(self._paragraphs(root)):
                paragraph_count += 1
                start_ms = self.ticks_to_ms(_attribute(paragraph, 'begin'), tick_rate)
                end_ms = self.ticks_to_ms(_attribute(paragraph, 'end'), tick_rate)

                if start_ms is None or end_ms is None:
                    logger.debug(f"Skipping <p> #{node_index}: missing or malformed begin/end")
                    skipped += 1
                    continue

                if end_ms <= start_ms:
                    logger.debug(f"Skipping <p> #{node_index}: end {end_ms} <= start {start_ms}")
                    skipped += 1
                    continue

                text = self.extract_text(paragraph)
                if not text:
                    continue

                cues.append(Cue(text=text, start_ms=start_ms, end_ms=end_ms))

            if paragraph_count == 0:
                logger.warning("No <p> elements found in TTML")
            if skipped:
                logger.warning(f"Skipped {skipped} <p> elements with invalid timing")

            # 安定ソート: 同じ開始時刻はドキュメント順のまま
            cues.sort(key=lambda cue: cue.start_ms)
            result = CueList(cues=cues, language=language)

            logger.info(
                f"Parsed TTML: language={result.language}, cues={len(result.cues)}, "
                f"multiline cues={result.multiline_count()}"
            )
            return result

        except CaptionParseError as e:
            self.error_handler.log_error(e)
            return CueList()
        except Exception as e:
            self.error_handler.log_error(
                CaptionParseError(f"Error parsing TTML: {e}", document_length=len(document))
            )
            return CueList()

    def parse_bytes(self, raw: bytes) -> CueList:
        """バイト列をデコードしてから解析する

        Args:
            raw (bytes): 字幕ドキュメントのバイト列

        Returns:
            CueList: 解析結果
        """
        return self.parse(self.decode_document(raw))


def parse_ttml(document: str) -> CueList:
    """TTML文字列を解析する（TTMLParser().parse の省略形）"""
    return TTMLParser().parse(document)
