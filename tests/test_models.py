"""
Tests for models and state modules.
"""

import asyncio
import json
import pytest
from unittest.mock import MagicMock


class TestPullRequestSnapshot:
    """Tests for PullRequestSnapshot parsing."""

    def test_from_payload(self, pull_payload):
        from hookbuild.models.pull import PullRequestSnapshot

        pull = PullRequestSnapshot.from_payload(pull_payload(pull_id=7, number=3, head_sha="f00"))

        assert pull.id == "7"
        assert pull.number == 3
        assert pull.author == "alice"
        assert pull.head.sha == "f00"
        assert pull.head.owner == "alice"
        assert pull.base.ref == "master"
        assert pull.base.owner == "acme"
        assert pull.base.clone_url == "git@github.com:acme/widgets.git"

    def test_nil_pull_request(self):
        from hookbuild.core.exceptions import MalformedEventError
        from hookbuild.models.pull import PullRequestSnapshot

        with pytest.raises(MalformedEventError, match="nil"):
            PullRequestSnapshot.from_payload(None)

    def test_missing_head_sha(self, pull_payload):
        from hookbuild.core.exceptions import MalformedEventError
        from hookbuild.models.pull import PullRequestSnapshot

        payload = pull_payload()
        del payload["head"]["sha"]

        with pytest.raises(MalformedEventError, match="head.sha"):
            PullRequestSnapshot.from_payload(payload)

    def test_missing_title_is_tolerated(self, pull_payload):
        from hookbuild.models.pull import PullRequestSnapshot

        payload = pull_payload()
        payload["title"] = None

        assert PullRequestSnapshot.from_payload(payload).title == ""


class TestPullRequestEntry:
    """Tests for reference ownership of PullRequestEntry."""

    def test_replace_build_moves_reference(self, snapshot):
        from hookbuild.models.pull import PullRequestEntry

        first, second = MagicMock(token="t1"), MagicMock(token="t2")
        entry = PullRequestEntry(pull=snapshot())

        entry.replace_build(first)
        entry.replace_build(second)

        first.ref.assert_called_once()
        first.unref.assert_called_once()
        second.ref.assert_called_once()
        second.unref.assert_not_called()
        assert entry.current_build_token == "t2"

    def test_release(self, snapshot):
        from hookbuild.models.pull import PullRequestEntry

        build = MagicMock(token="t1")
        entry = PullRequestEntry(pull=snapshot())
        entry.replace_build(build)

        entry.release()

        build.unref.assert_called_once()
        assert entry.current_build_token == ""


class TestBuildLedger:
    """Tests for BuildLedger."""

    def test_track_once(self):
        from hookbuild.state.builds import BuildLedger

        ledger = BuildLedger()
        build = MagicMock(token="t1")

        assert ledger.track(build) is True
        assert ledger.track(MagicMock(token="t1")) is False

        build.ref.assert_called_once()
        assert "t1" in ledger
        assert len(ledger) == 1

    def test_untrack_releases_reference(self):
        from hookbuild.state.builds import BuildLedger

        ledger = BuildLedger()
        build = MagicMock(token="t1")
        ledger.track(build)

        # a different handle for the same token releases the tracked one
        assert ledger.untrack(MagicMock(token="t1")) is True
        build.unref.assert_called_once()
        assert "t1" not in ledger

    def test_untrack_missing(self):
        from hookbuild.state.builds import BuildLedger

        ledger = BuildLedger()
        build = MagicMock(token="nope")

        assert ledger.untrack(build) is False
        build.unref.assert_not_called()

    def test_tokens(self):
        from hookbuild.state.builds import BuildLedger

        ledger = BuildLedger()
        for token in ("a", "b", "c"):
            ledger.track(MagicMock(token=token))

        assert set(ledger.tokens()) == {"a", "b", "c"}
        assert ledger.get("b").token == "b"


class TestInMemoryApp:
    """Tests for the in-memory engine."""

    def test_submit_and_lookup(self):
        from hookbuild.models.engine import Build, BuildConfig, InMemoryApp

        app = InMemoryApp("web")
        token = app.submit("g1", BuildConfig(group="g1", metadata={"k": "v"}))

        build = app.lookup(token)
        assert isinstance(build, Build)
        assert build.token == token
        assert build.metadata("k") == "v"
        assert build.metadata("missing") == ""
        assert app.lookup("") is None

    def test_emit_calls_listeners(self):
        from hookbuild.models.engine import SIGNAL_BUILD_COMPLETE, BuildConfig, InMemoryApp

        app = InMemoryApp("web")
        seen = []
        app.listen(SIGNAL_BUILD_COMPLETE, seen.append)
        build = app.lookup(app.submit("g", BuildConfig()))

        app.emit(SIGNAL_BUILD_COMPLETE, build)

        assert seen == [build]

    def test_failing_submissions(self):
        from hookbuild.core.exceptions import BuildSubmitError
        from hookbuild.models.engine import BuildConfig, InMemoryApp

        app = InMemoryApp("web")
        app.fail_submissions = True

        with pytest.raises(BuildSubmitError):
            app.submit("g", BuildConfig())


class TestTokenCache:
    """Tests for TokenCache."""

    def test_missing_key(self, token_cache):
        assert token_cache.get("github:token") == ""

    def test_store_persists(self, tmp_path):
        from hookbuild.core.cache import TokenCache

        TokenCache(tmp_path / "sub" / "cache.json").store("github:token", "gho_abc")

        assert TokenCache(tmp_path / "sub" / "cache.json").get("github:token") == "gho_abc"
        assert json.loads((tmp_path / "sub" / "cache.json").read_text()) == {"github:token": "gho_abc"}

    def test_corrupt_file_is_ignored(self, tmp_path):
        from hookbuild.core.cache import TokenCache

        path = tmp_path / "cache.json"
        path.write_text("{not json")

        cache = TokenCache(path)
        assert cache.get("github:token") == ""
        cache.store("github:token", "x")
        assert cache.get("github:token") == "x"


class TestRWLock:
    """Tests for the asyncio readers-writer lock."""

    @pytest.mark.asyncio
    async def test_readers_share(self):
        from hookbuild.core.locks import RWLock

        lock = RWLock()
        inside = 0
        peak = 0

        async def reader():
            nonlocal inside, peak
            async with lock.read():
                inside += 1
                peak = max(peak, inside)
                await asyncio.sleep(0.01)
                inside -= 1

        await asyncio.gather(reader(), reader(), reader())
        assert peak == 3

    @pytest.mark.asyncio
    async def test_writer_excludes_readers(self):
        from hookbuild.core.locks import RWLock

        lock = RWLock()
        events = []

        async def writer():
            async with lock.write():
                events.append("w-start")
                await asyncio.sleep(0.01)
                events.append("w-end")

        async def reader():
            await asyncio.sleep(0)
            async with lock.read():
                events.append("r")

        await asyncio.gather(writer(), reader())
        assert events == ["w-start", "w-end", "r"]
