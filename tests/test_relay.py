import asyncio

import pytest

from relay.connection import Connection
from relay.packet_router import RelayDispatcher
from relay.protocol import TELEMETRY_FIELDS, telemetry_message


async def _paired(hub, connect):
    coach = connect(hub)
    student = connect(hub)
    await coach.register("coach-1", sharer=True)
    await student.register("student-1", code=coach.sent[-1]["code"])
    return coach, student


def test_telemetry_is_reserialized_with_allow_listed_fields():
    frame = {
        "type": "telemetry",
        "throttle": 0.8,
        "brake": 0.0,
        "steering": -0.25,
        "speed": 182.4,
        "gear": "N",
        "driver_name": "Max",
        "session_time": 612.5,
        "fuel": 12.0,
        "secret": "nope",
    }
    message = telemetry_message(frame)
    assert message["type"] == "telemetry"
    assert set(message) == {"type", *TELEMETRY_FIELDS}
    assert message["gear"] == "N"


def test_paired_telemetry_flows_both_ways(hub, connect):
    async def scenario():
        coach, student = await _paired(hub, connect)

        await coach.send(type="telemetry", speed=120, gear=3, lap=7)
        assert student.sent[-1] == {"type": "telemetry", "speed": 120, "gear": 3}

        await student.send(type="telemetry", driver_name="Sam", brake=1)
        assert coach.sent[-1] == {"type": "telemetry", "brake": 1, "driver_name": "Sam"}

    asyncio.run(scenario())


def test_unpaired_telemetry_is_dropped_silently(hub, connect):
    async def scenario():
        coach = connect(hub)
        await coach.register("coach-1", sharer=True)
        await coach.send(type="telemetry", speed=99)
        assert [m["type"] for m in coach.sent] == ["pairing_code"]

        stranger = connect(hub)
        await stranger.send(type="telemetry", speed=99)
        assert stranger.sent == []
        assert coach.sent[-1]["type"] == "pairing_code"
        # Unregistered frames never reach the dispatcher
        assert hub.dispatcher.dropped == 1

    asyncio.run(scenario())


def test_telemetry_to_offline_peer_is_dropped(hub, connect):
    async def scenario():
        coach, student = await _paired(hub, connect)
        await student.disconnect()
        sent_before = len(coach.sent)

        delivered = await hub.dispatcher.forward("coach-1", {"speed": 10})
        assert delivered is False
        assert len(coach.sent) == sent_before
        assert len(student.sent) == 1  # just the paired notice

    asyncio.run(scenario())


def test_frames_from_one_sender_keep_their_order(hub, connect):
    async def scenario():
        coach, student = await _paired(hub, connect)
        for i in range(50):
            await coach.send(type="telemetry", session_time=i)

        times = [m["session_time"] for m in student.connection.of_type("telemetry")]
        assert times == list(range(50))

    asyncio.run(scenario())


def test_dispatcher_counts_forwarded_frames(hub, connect):
    async def scenario():
        await _paired(hub, connect)
        dispatcher = RelayDispatcher(hub.sessions)
        assert await dispatcher.forward("coach-1", {"speed": 1}) is True
        assert await dispatcher.forward("nobody", {"speed": 1}) is False
        assert (dispatcher.forwarded, dispatcher.dropped) == (1, 1)

    asyncio.run(scenario())


def test_connection_requires_a_send_implementation():
    with pytest.raises(TypeError):
        Connection()
