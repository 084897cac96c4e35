import asyncio


async def _coach_with_code(hub, connect, session_id="coach-1"):
    coach = connect(hub)
    await coach.register(session_id, sharer=True)
    return coach, coach.sent[-1]["code"]


def test_code_survives_grace_period_then_is_released(make_hub, clock, connect):
    hub = make_hub(GRACE_PERIOD_SECONDS=300)

    async def scenario():
        coach, code = await _coach_with_code(hub, connect)
        await coach.disconnect()

        clock.advance(120)
        assert await hub.reaper.sweep() == []
        student = connect(hub)
        await student.register("student-1", code=code)
        assert student.sent[-1]["code"] == "peer_offline"

        clock.advance(181)
        assert await hub.reaper.sweep() == ["coach-1"]
        await student.send(type="pair", code=code)
        assert student.sent[-1]["code"] == "code_not_found"
        assert hub.sessions.get("coach-1") is None
        assert len(hub.codes) == 0

    asyncio.run(scenario())


def test_peer_is_notified_once_across_disconnect_and_reap(make_hub, clock, connect):
    hub = make_hub(GRACE_PERIOD_SECONDS=60)

    async def scenario():
        coach, code = await _coach_with_code(hub, connect)
        student = connect(hub)
        await student.register("student-1", code=code)

        await coach.disconnect()
        clock.advance(61)
        await hub.reaper.sweep()

        notices = [m for m in student.sent if m["type"] in ("unpaired", "peer_disconnected")]
        assert notices == [{"type": "peer_disconnected", "peer_id": "coach-1"}]
        assert hub.sessions.get("student-1").paired_with is None

        # The freed student can pair with someone else
        other, other_code = await _coach_with_code(hub, connect, "coach-2")
        await student.send(type="pair", code=other_code)
        assert student.sent[-1]["peer_id"] == "coach-2"

    asyncio.run(scenario())


def test_reconnect_within_grace_cancels_eviction(make_hub, clock, connect):
    hub = make_hub(GRACE_PERIOD_SECONDS=300)

    async def scenario():
        coach, code = await _coach_with_code(hub, connect)
        await coach.disconnect()
        clock.advance(200)

        back = connect(hub)
        await back.register("coach-1", sharer=True)
        assert back.sent[-1] == {"type": "pairing_code", "code": code}

        clock.advance(500)
        assert await hub.reaper.sweep() == []
        assert hub.codes.resolve(code) == "coach-1"

    asyncio.run(scenario())


def test_closed_session_without_stamp_gets_stamped_first(make_hub, clock, connect):
    hub = make_hub(GRACE_PERIOD_SECONDS=300)

    async def scenario():
        coach, code = await _coach_with_code(hub, connect)
        # Transport died without the close path running
        coach.connection.mark_closed()

        assert await hub.reaper.sweep() == []
        assert hub.sessions.get("coach-1").disconnected_at == clock.now

        clock.advance(300)
        assert await hub.reaper.sweep() == ["coach-1"]
        assert code not in hub.codes

    asyncio.run(scenario())


def test_sweep_is_a_no_op_under_immediate_teardown(make_hub, clock, connect):
    hub = make_hub(RECONNECT_POLICY="immediate")

    async def scenario():
        coach, _ = await _coach_with_code(hub, connect)
        student = connect(hub)
        await student.register("student-1")
        await coach.disconnect()

        clock.advance(10_000)
        assert await hub.reaper.sweep() == []
        assert len(hub.sessions) == 1
        assert len(hub.codes) == 0

    asyncio.run(scenario())


def test_periodic_task_starts_and_stops(make_hub, clock, connect):
    hub = make_hub(REAP_INTERVAL_SECONDS=0.01, GRACE_PERIOD_SECONDS=5)

    async def scenario():
        coach, _ = await _coach_with_code(hub, connect)
        await coach.disconnect()
        clock.advance(10)

        hub.reaper.start()
        for _ in range(100):
            if hub.sessions.get("coach-1") is None:
                break
            await asyncio.sleep(0.01)
        await hub.reaper.stop()

        assert hub.sessions.get("coach-1") is None

    asyncio.run(scenario())
