"""
字幕トラック選択の単体テスト
"""

import unittest

from subtitle_sync.models import SubtitleTrack
from subtitle_sync.tracks import (
    CLOSED_CAPTIONS,
    SUBTITLES,
    choose_overlay,
    select_overlay_track,
    to_track,
    to_tracks,
)

from fakes import FakeSession, make_handle, make_track


class TestChooseOverlay(unittest.TestCase):
    """choose_overlay関数のテスト"""

    def setUp(self):
        """テストの前準備"""
        self.tracks = [
            to_track(make_track('en', 'en', SUBTITLES)),
            to_track(make_track('pl-cc', 'pl', CLOSED_CAPTIONS)),
            to_track(make_track('pl-sub', 'pl', SUBTITLES)),
            to_track(make_track('off', 'pl', SUBTITLES, is_none_track=True)),
        ]

    def test_prefers_subtitles_by_default(self):
        """デフォルトでは通常字幕を優先"""
        self.assertEqual(choose_overlay(self.tracks, 'pl').track_id, 'pl-sub')

    def test_prefers_closed_captions(self):
        """クローズドキャプション優先の設定"""
        self.assertEqual(choose_overlay(self.tracks, 'pl', True).track_id, 'pl-cc')

    def test_falls_back_to_other_type(self):
        """優先種別が無ければもう一方の種別"""
        tracks = [track for track in self.tracks if track.track_id != 'pl-sub']
        self.assertEqual(choose_overlay(tracks, 'pl').track_id, 'pl-cc')

    def test_falls_back_to_unknown_type(self):
        """種別が不明なトラックのみの場合は最初の一致"""
        tracks = [to_track(make_track('pl-x', 'pl', 'FORCED'))]
        self.assertEqual(choose_overlay(tracks, 'pl').track_id, 'pl-x')

    def test_prefix_match(self):
        """言語タグは前方一致"""
        tracks = [to_track(make_track('en-us', 'en-US', SUBTITLES))]
        self.assertEqual(choose_overlay(tracks, 'en').track_id, 'en-us')

    def test_excludes_none_track(self):
        """Offトラックは選ばない"""
        tracks = [track for track in self.tracks if track.track_id == 'off']
        self.assertIsNone(choose_overlay(tracks, 'pl'))

    def test_no_match(self):
        """一致するトラックが無い場合"""
        self.assertIsNone(choose_overlay(self.tracks, 'de'))
        self.assertIsNone(choose_overlay([], 'pl'))


class TestSelectOverlayTrack(unittest.TestCase):
    """select_overlay_track関数のテスト"""

    def test_selection(self):
        """セッションからの選択"""
        selection = select_overlay_track(make_handle(), 'pl')

        self.assertEqual(selection.overlay.track_id, 'pl-sub')
        self.assertEqual(len(selection.all), 4)
        self.assertEqual(selection.current.track_id, 'en-sub')
        self.assertEqual(selection.overlay.raw['trackId'], 'pl-sub')

    def test_no_overlay_language(self):
        """言語が無い場合は overlay だけ空"""
        selection = select_overlay_track(make_handle(), 'ja')

        self.assertIsNone(selection.overlay)
        self.assertEqual(len(selection.all), 4)

    def test_session_error(self):
        """セッションの読み取りに失敗しても例外を出さない"""
        class BrokenSession(FakeSession):
            def getTimedTextTrackList(self):
                raise RuntimeError("player gone")

        selection = select_overlay_track(make_handle(session=BrokenSession()), 'pl')

        self.assertIsNone(selection.overlay)
        self.assertEqual(selection.all, [])

    def test_malformed_track_skipped(self):
        """検証できないトラックだけを読み飛ばす"""
        session = FakeSession(tracks=[
            make_track('pl-sub', 'pl', SUBTITLES),
            {'trackId': 'bad', 'bcp47': 42, 'displayName': ['x']},
            make_track('en-sub', 'en', SUBTITLES),
        ])

        selection = select_overlay_track(make_handle(session=session), 'pl')

        self.assertEqual([track.track_id for track in selection.all], ['pl-sub', 'en-sub'])
        self.assertEqual(selection.overlay.track_id, 'pl-sub')
        self.assertEqual(selection.current.track_id, 'pl-sub')

    def test_malformed_current_track(self):
        """現在のトラックが検証できなくても選択は行う"""
        session = FakeSession(current={'trackId': 'bad', 'bcp47': 7})

        selection = select_overlay_track(make_handle(session=session), 'pl')

        self.assertIsNone(selection.current)
        self.assertEqual(selection.overlay.track_id, 'pl-sub')

    def test_to_track(self):
        """トラックオブジェクトの変換"""
        track = to_track(make_track('pl-sub', 'pl', SUBTITLES))

        self.assertIsInstance(track, SubtitleTrack)
        self.assertEqual(track.bcp47, 'pl')
        self.assertEqual(track.raw_track_type, SUBTITLES)
        self.assertFalse(track.is_none_track)
        self.assertIsNone(to_track(None))

    def test_to_tracks(self):
        """一括変換では不正なトラックとNoneを除く"""
        tracks = to_tracks([make_track('pl-sub', 'pl'), None, {'bcp47': 3.5}])

        self.assertEqual([track.track_id for track in tracks], ['pl-sub'])
        self.assertEqual(to_tracks([]), [])


if __name__ == '__main__':
    unittest.main()
