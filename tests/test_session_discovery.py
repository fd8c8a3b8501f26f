"""セッション探索とホストアダプターのテスト."""

import pytest

from subtitle_sync.error_handler import HostAccessError
from subtitle_sync.host_adapter import NetflixHostAdapter, resolve_path
from subtitle_sync.session_discovery import DiscoveryOptions, SessionDiscovery, is_watch_session

from fakes import FakeSession, FakeSource, RecordingSleep, make_handle, make_window


class TestDiscoveryOptions:
    """DiscoveryOptionsのテスト."""

    def test_default_delays(self):
        """デフォルトの待機時間列."""
        options = DiscoveryOptions(max_attempts=9)
        assert list(options.delays()) == [250, 375, 562, 843, 1264, 1896, 2000, 2000]

    def test_delay_count(self):
        """待機は試行の間だけ."""
        assert len(list(DiscoveryOptions().delays())) == 19
        assert list(DiscoveryOptions(max_attempts=1).delays()) == []

    @pytest.mark.parametrize("kwargs", [
        {"max_attempts": 0},
        {"initial_delay_ms": -1},
        {"max_delay_ms": -1},
        {"backoff_factor": 0.5},
    ])
    def test_invalid_options(self, kwargs):
        """不正な設定値."""
        with pytest.raises(ValueError):
            DiscoveryOptions(**kwargs)


class TestSessionDiscovery:
    """SessionDiscoveryクラスのテスト."""

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        """全ての試行が失敗した場合."""
        source = FakeSource(None)
        sleep = RecordingSleep()
        discovery = SessionDiscovery(source, DiscoveryOptions(max_attempts=3), sleep=sleep)

        result = await discovery.discover()

        assert result is None
        assert source.calls == 3
        assert sleep.delays == [0.25, 0.375]

    @pytest.mark.asyncio
    async def test_succeeds_after_retries(self):
        """数回の失敗後に見つかる場合."""
        handle = make_handle('watch-42')
        source = FakeSource(None, None, handle)
        sleep = RecordingSleep()
        discovery = SessionDiscovery(source, sleep=sleep)

        result = await discovery.discover()

        assert result is handle
        assert source.calls == 3
        assert sleep.delays == [0.25, 0.375]

    @pytest.mark.asyncio
    async def test_immediate_success_does_not_sleep(self):
        """最初の試行で見つかる場合."""
        sleep = RecordingSleep()
        discovery = SessionDiscovery(FakeSource(make_handle()), sleep=sleep)

        assert await discovery.discover() is not None
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_host_error_is_transient(self, caplog):
        """読み取り例外は未準備として扱う."""
        handle = make_handle()
        error = HostAccessError("boom", path="netflix")
        source = FakeSource(error, handle)
        discovery = SessionDiscovery(source, sleep=RecordingSleep())

        result = await discovery.discover()

        assert result is handle
        assert error.context['attempt'] == 1
        assert "'operation': 'discover'" in caplog.text
        assert "'max_attempts': 20" in caplog.text

    @pytest.mark.asyncio
    async def test_per_call_options(self):
        """呼び出しごとの設定が優先される."""
        sleep = RecordingSleep()
        discovery = SessionDiscovery(FakeSource(None), sleep=sleep)

        await discovery.discover(DiscoveryOptions(max_attempts=2, initial_delay_ms=100))

        assert sleep.delays == [0.1]


class TestNetflixHostAdapter:
    """NetflixHostAdapterのテスト."""

    def test_snapshot(self):
        """セッションが得られる場合."""
        session = FakeSession(movie_id=80100200)
        adapter = NetflixHostAdapter(lambda: make_window(session, 'watch-7'))

        handle = adapter.try_snapshot()

        assert handle.session_id == 'watch-7'
        assert handle.session is session
        assert handle.content_id() == '80100200'

    def test_not_ready(self):
        """アプリケーションやセッションが未準備の場合."""
        assert NetflixHostAdapter(lambda: {}).try_snapshot() is None
        assert NetflixHostAdapter(lambda: None).try_snapshot() is None
        assert NetflixHostAdapter(lambda: make_window(FakeSession(), None)).try_snapshot() is None
        assert NetflixHostAdapter(lambda: make_window(None, 'watch-1')).try_snapshot() is None

    def test_host_exception_wrapped(self):
        """読み取り中の例外はHostAccessErrorになる."""
        def broken():
            raise RuntimeError("not initialized")

        window = {'netflix': {'appContext': {'state': {'playerApp': {'getAPI': broken}}}}}
        adapter = NetflixHostAdapter(lambda: window)

        with pytest.raises(HostAccessError) as excinfo:
            adapter.try_snapshot()
        assert excinfo.value.context['path'] == NetflixHostAdapter.PLAYER_APP_PATH

    def test_resolve_path_with_objects(self):
        """属性と辞書の混在したパス."""
        class Holder:
            child = {'leaf': 5}

        assert resolve_path({'root': Holder()}, 'root.child.leaf') == 5
        assert resolve_path({'root': Holder()}, 'root.missing.leaf') is None

    @pytest.mark.asyncio
    async def test_discovery_with_adapter(self):
        """アダプター経由の探索."""
        windows = [{}, make_window(FakeSession(), 'watch-3')]
        adapter = NetflixHostAdapter(lambda: windows.pop(0) if len(windows) > 1 else windows[0])
        discovery = SessionDiscovery(adapter, sleep=RecordingSleep())

        handle = await discovery.discover()

        assert handle.session_id == 'watch-3'


class TestIsWatchSession:
    """is_watch_session関数のテスト."""

    def test_watch_marker(self):
        assert is_watch_session('watch-123')
        assert is_watch_session('abc_watch_1')
        assert not is_watch_session('motion-1')
        assert not is_watch_session('')
        assert not is_watch_session(None)
