"""Tests for the background replicator: non-blocking submit, failure stream."""

import asyncio

from careersync.sync.replicator import ReplicationFailure, Replicator


async def _ok() -> None:
    await asyncio.sleep(0)


async def _boom() -> None:
    await asyncio.sleep(0)
    msg = "remote unavailable"
    raise RuntimeError(msg)


class TestSubmit:
    async def test_submit_does_not_wait(self) -> None:
        gate = asyncio.Event()
        done: list[str] = []

        async def slow() -> None:
            await gate.wait()
            done.append("written")

        r = Replicator()
        r.submit("insert_job", "j1", slow())
        assert r.pending == 1
        assert done == []
        gate.set()
        await r.drain()
        assert done == ["written"]
        assert r.pending == 0

    async def test_success_records_no_failure(self) -> None:
        r = Replicator()
        r.submit("insert_job", "j1", _ok())
        await r.drain()
        assert r.failures == []

    async def test_drain_when_idle(self) -> None:
        await Replicator().drain()


class TestFailures:
    async def test_failure_recorded(self) -> None:
        r = Replicator()
        r.submit("upsert_application", "a1", _boom())
        await r.drain()
        assert len(r.failures) == 1
        failure = r.failures[0]
        assert failure.operation == "upsert_application"
        assert failure.record_id == "a1"
        assert "remote unavailable" in failure.error

    async def test_listeners_notified(self) -> None:
        seen: list[ReplicationFailure] = []
        r = Replicator()
        r.subscribe(seen.append)
        r.submit("insert_job", "j1", _boom())
        await r.drain()
        assert [f.record_id for f in seen] == ["j1"]

    async def test_unsubscribe(self) -> None:
        seen: list[ReplicationFailure] = []
        r = Replicator()
        unsubscribe = r.subscribe(seen.append)
        unsubscribe()
        r.submit("insert_job", "j1", _boom())
        await r.drain()
        assert seen == []

    async def test_listener_error_does_not_propagate(self) -> None:
        def broken(_: ReplicationFailure) -> None:
            msg = "listener bug"
            raise ValueError(msg)

        seen: list[ReplicationFailure] = []
        r = Replicator()
        r.subscribe(broken)
        r.subscribe(seen.append)
        r.submit("insert_job", "j1", _boom())
        await r.drain()
        assert len(seen) == 1

    async def test_failure_list_bounded(self) -> None:
        r = Replicator(max_failures=2)
        for i in range(3):
            r.submit("insert_job", f"j{i}", _boom())
        await r.drain()
        assert [f.record_id for f in r.failures] == ["j1", "j2"]
