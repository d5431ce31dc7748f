from __future__ import annotations

import asyncio

import pytest

from conftest import make_channel
from parking_sync.errors import ConnectionLost, ForceUpdateFailed
from parking_sync.sync.models import ChannelState, ConnectionStatus, OccupancyEvent
from parking_sync.sync.transport import CLIENT_DISCONNECT

PARKING_PATH = "/api/public/parking"


def record(sensor_id: int, occupied: int, **extra) -> dict:
    return {
        "sensor_id": sensor_id,
        "is_occupied": occupied,
        "timestamp": "2026-10-17T12:00:00Z",
        **extra,
    }


def test_connect_skipped_when_unreachable(network, backend):
    network.reachable = False
    channel = make_channel(network, backend)

    asyncio.run(channel.connect())

    assert channel.state == ChannelState.DISCONNECTED
    assert network.transports == []


def test_connect_reports_status(network, backend):
    channel = make_channel(network, backend)
    statuses = []
    channel.on_connection_status(statuses.append)

    async def scenario():
        await channel.connect()
        await channel.connect()

    asyncio.run(scenario())

    assert channel.is_connected()
    assert statuses == [ConnectionStatus.CONNECTED]
    assert len(network.transports) == 1


def test_events_reach_every_subscriber(network, backend):
    channel = make_channel(network, backend)
    first, second = [], []
    channel.on_occupancy_update(first.extend)
    unsubscribe = channel.on_occupancy_update(second.extend)

    async def scenario():
        await channel.connect()
        await network.latest.emit("parking-update", record(10, 1))
        unsubscribe()
        await network.latest.emit("parking-update", [record(11, 0), record(12, 1)])

    asyncio.run(scenario())

    assert [e.sensor_id for e in first] == [10, 11, 12]
    assert [e.sensor_id for e in second] == [10]
    assert first[0].is_occupied is True
    assert first[1].is_occupied is False


def test_floor_filter_prefers_explicit_floor(network, backend):
    channel = make_channel(network, backend)
    floor_one = []
    channel.on_occupancy_update(floor_one.extend, floor=1)

    async def scenario():
        await channel.connect()
        await network.latest.emit(
            "parking-update",
            [
                record(10, 1),
                record(11, 1, floor_level="2nd Floor"),
                record(50, 1, floor=1),
                record(60, 1),
            ],
        )

    asyncio.run(scenario())

    assert [e.sensor_id for e in floor_one] == [10, 50]


def test_malformed_and_duplicate_events_dropped(network, backend):
    channel = make_channel(network, backend)
    received = []
    channel.on_occupancy_update(received.extend)

    async def scenario():
        await channel.connect()
        await network.latest.emit("parking-update", [{"sensor_id": "x"}, record(10, 1)])
        await network.latest.emit("parking-update", record(10, 1))
        await network.latest.emit("parking-update", {"is_occupied": 2})
        await network.latest.emit(
            "parking-update", record(10, 0, timestamp="2026-10-17T12:00:05Z")
        )

    asyncio.run(scenario())

    assert [(e.sensor_id, e.is_occupied) for e in received] == [(10, True), (10, False)]


def test_failing_handler_does_not_block_others(network, backend):
    channel = make_channel(network, backend)
    received = []

    def broken(events):
        raise RuntimeError("handler bug")

    channel.on_occupancy_update(broken)
    channel.on_occupancy_update(received.extend)

    async def scenario():
        await channel.connect()
        await network.latest.emit("parking-update", record(10, 1))

    asyncio.run(scenario())

    assert len(received) == 1


def test_reconnects_after_server_disconnect(network, backend):
    channel = make_channel(network, backend)
    statuses = []
    channel.on_connection_status(statuses.append)

    async def scenario():
        await channel.connect()
        await network.latest.server_disconnect()
        state_after_drop = channel.state
        error_after_drop = channel.last_error
        await asyncio.sleep(0.1)
        return state_after_drop, error_after_drop

    state_after_drop, error_after_drop = asyncio.run(scenario())

    assert state_after_drop == ChannelState.RECONNECTING
    assert isinstance(error_after_drop, ConnectionLost)
    assert channel.is_connected()
    assert len(network.transports) == 2
    assert statuses == [
        ConnectionStatus.CONNECTED,
        ConnectionStatus.DISCONNECTED,
        ConnectionStatus.CONNECTED,
    ]


def test_reconnect_waits_for_network(network, backend):
    channel = make_channel(network, backend)

    async def scenario():
        await channel.connect()
        network.reachable = False
        await network.latest.server_disconnect()
        await asyncio.sleep(0.05)
        offline_state = channel.state
        offline_transports = len(network.transports)
        network.reachable = True
        await asyncio.sleep(0.05)
        return offline_state, offline_transports

    offline_state, offline_transports = asyncio.run(scenario())

    assert offline_state == ChannelState.RECONNECTING
    assert offline_transports == 1
    assert channel.is_connected()


def test_failed_connect_is_retried(network, backend):
    network.fail_connects = True
    channel = make_channel(network, backend)
    statuses = []
    channel.on_connection_status(statuses.append)

    async def scenario():
        await channel.connect()
        first_state = channel.state
        await asyncio.sleep(0.03)
        network.fail_connects = False
        await asyncio.sleep(0.05)
        return first_state

    first_state = asyncio.run(scenario())

    assert first_state == ChannelState.RECONNECTING
    assert statuses[0] == ConnectionStatus.ERROR
    assert statuses[-1] == ConnectionStatus.CONNECTED
    assert channel.is_connected()
    assert channel.last_error is None


def test_client_disconnect_does_not_reconnect(network, backend):
    channel = make_channel(network, backend)

    async def scenario():
        await channel.connect()
        await network.latest.server_disconnect(CLIENT_DISCONNECT)
        await asyncio.sleep(0.05)

    asyncio.run(scenario())

    assert len(network.transports) == 1


def test_disconnect_stops_reconnection_and_clears_subscribers(network, backend):
    channel = make_channel(network, backend)
    received = []
    statuses = []
    channel.on_occupancy_update(received.extend)
    channel.on_connection_status(statuses.append)

    async def scenario():
        await channel.connect()
        network.reachable = False
        await network.latest.server_disconnect()
        await channel.disconnect()
        transports_at_close = len(network.transports)
        network.reachable = True
        await asyncio.sleep(0.05)
        await network.latest.emit("parking-update", record(10, 1))
        return transports_at_close

    transports_at_close = asyncio.run(scenario())

    assert channel.state == ChannelState.DISCONNECTED
    assert len(network.transports) == transports_at_close
    assert received == []
    assert statuses == [ConnectionStatus.CONNECTED, ConnectionStatus.DISCONNECTED]


def test_force_update_broadcasts_snapshot(network, backend):
    backend.json(PARKING_PATH, {"data": [record(10, 1), record(11, 0)]})
    channel = make_channel(network, backend)
    received = []
    channel.on_occupancy_update(received.extend)

    async def scenario():
        events = await channel.force_update()
        await channel.connect()
        await network.latest.emit("parking-update", record(10, 1))
        return events

    events = asyncio.run(scenario())

    assert [e.sensor_id for e in events] == [10, 11]
    assert all(isinstance(e, OccupancyEvent) for e in received)
    # The live copy of an already-delivered reading is a duplicate
    assert [e.sensor_id for e in received] == [10, 11]


def test_force_update_accepts_bare_list(network, backend):
    backend.json(PARKING_PATH, [record(10, 1)])
    channel = make_channel(network, backend)

    events = asyncio.run(channel.force_update())

    assert len(events) == 1


@pytest.mark.parametrize(
    "payload, status_code",
    [
        ({"data": "nope"}, 200),
        ([{"sensor_id": 1}], 200),
        ({"error": "down"}, 503),
    ],
)
def test_force_update_failures(network, backend, payload, status_code):
    backend.json(PARKING_PATH, payload, status_code=status_code)
    channel = make_channel(network, backend)

    with pytest.raises(ForceUpdateFailed):
        asyncio.run(channel.force_update())


def test_force_update_unreachable_backend(network, backend):
    channel = make_channel(network, backend)

    with pytest.raises(ForceUpdateFailed):
        asyncio.run(channel.force_update())


def test_reconnects_after_every_drop_when_connect_callback_is_deferred(network, backend):
    network.deferred_connects = True
    channel = make_channel(network, backend)
    states = []

    async def scenario():
        await channel.connect()
        for _ in range(2):
            await network.latest.server_disconnect()
            await asyncio.sleep(0.1)
            states.append(channel.state)
            assert network.latest.connected

    asyncio.run(scenario())

    assert states == [ChannelState.CONNECTED, ChannelState.CONNECTED]
    assert len(network.transports) == 3


def test_connect_while_reconnecting_does_not_open_second_transport(network, backend):
    network.fail_connects = True
    channel = make_channel(network, backend, reconnect_interval=10)

    async def scenario():
        await channel.connect()
        await channel.connect()
        transports = len(network.transports)
        await channel.disconnect()
        return transports

    assert asyncio.run(scenario()) == 1
    assert channel.state == ChannelState.DISCONNECTED


def test_stale_transport_closed_before_new_attempt(network, backend):
    channel = make_channel(network, backend)

    async def scenario():
        await channel.connect()
        first = network.latest
        channel._set_state(ChannelState.RECONNECTING)
        await channel._attempt_connect()
        return first

    first = asyncio.run(scenario())

    assert first.closed
    assert len(network.transports) == 2
    assert channel.is_connected()
