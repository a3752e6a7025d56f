import asyncio

from game.client.heartbeat import Heartbeat


class TestHeartbeat:
    async def test_pong_resolves_check(self):
        heartbeat = Heartbeat(timeout_seconds=1.0)

        async def send_ping():
            asyncio.get_running_loop().call_soon(heartbeat.on_pong)

        assert await heartbeat.check(send_ping)
        assert not heartbeat.pending

    async def test_missing_pong_times_out(self):
        heartbeat = Heartbeat(timeout_seconds=0.05)

        async def send_ping():
            pass

        assert not await heartbeat.check(send_ping)
        assert not heartbeat.pending

    async def test_send_failure_is_unhealthy(self):
        heartbeat = Heartbeat(timeout_seconds=1.0)

        async def send_ping():
            raise ConnectionError("closed")

        assert not await heartbeat.check(send_ping)

    async def test_fail_resolves_pending_check(self):
        heartbeat = Heartbeat(timeout_seconds=5.0)

        async def send_ping():
            pass

        check = asyncio.create_task(heartbeat.check(send_ping))
        await asyncio.sleep(0)
        assert heartbeat.pending
        heartbeat.fail()
        assert not await check

    def test_stray_pong_is_ignored(self):
        heartbeat = Heartbeat()
        heartbeat.on_pong()
        assert not heartbeat.pending
