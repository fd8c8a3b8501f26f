"""
キュー検索モジュールの単体テスト
"""

import unittest

from subtitle_sync.cue_locator import find_active
from subtitle_sync.models import Cue, CueList


class TestFindActive(unittest.TestCase):
    """find_active関数のテスト"""

    def setUp(self):
        """テストの前準備"""
        self.cues = CueList(cues=[
            Cue(text="Hello", start_ms=0, end_ms=3000),
            Cue(text="World", start_ms=3000, end_ms=6000),
        ])

    def test_inside_cue(self):
        """区間内の時刻のテスト"""
        self.assertEqual(find_active(2999, self.cues).text, "Hello")
        self.assertEqual(find_active(0, self.cues).text, "Hello")

    def test_end_is_exclusive(self):
        """終了時刻は区間に含まれない"""
        self.assertEqual(find_active(3000, self.cues).text, "World")
        self.assertIsNone(find_active(6000, self.cues))

    def test_idempotent(self):
        """同じ入力で同じ結果になる"""
        first = find_active(4500, self.cues)
        second = find_active(4500, self.cues)
        self.assertEqual(first, second)

    def test_before_first_cue(self):
        """最初のキューより前の時刻のテスト"""
        cues = [Cue(text="Late", start_ms=5000, end_ms=7000)]
        self.assertIsNone(find_active(1000, cues))
        self.assertIsNone(find_active(-1, cues))

    def test_gap_between_cues(self):
        """キューの間の時刻のテスト"""
        cues = [
            Cue(text="A", start_ms=0, end_ms=1000),
            Cue(text="B", start_ms=2000, end_ms=3000),
        ]
        self.assertIsNone(find_active(1500, cues))

    def test_invalid_input(self):
        """空や不正な入力のテスト"""
        self.assertIsNone(find_active(1000, []))
        self.assertIsNone(find_active(1000, CueList()))
        self.assertIsNone(find_active(1000, None))
        self.assertIsNone(find_active(1000, "not a list"))
        self.assertIsNone(find_active(1000, {"cues": []}))

    def test_overlap_returns_first(self):
        """重なったキューでは先のキューを返す"""
        cues = [
            Cue(text="Long", start_ms=0, end_ms=5000),
            Cue(text="Short", start_ms=1000, end_ms=2000),
        ]
        self.assertEqual(find_active(1500, cues).text, "Long")

    def test_stops_at_later_start(self):
        """開始時刻が後のキューで走査を打ち切る"""
        cues = [
            Cue(text="A", start_ms=0, end_ms=1000),
            Cue(text="B", start_ms=2000, end_ms=3000),
            # 並び順の前提に反する要素には到達しない
            Cue(text="C", start_ms=1000, end_ms=1800),
        ]
        self.assertIsNone(find_active(1500, cues))

    def test_accepts_tuple(self):
        """タプルも受け付ける"""
        cues = tuple(self.cues.cues)
        self.assertEqual(find_active(100, cues).text, "Hello")


if __name__ == '__main__':
    unittest.main()
