from __future__ import annotations

import asyncio

import pytest

from chat_sync.domain.events.connection_status_changed import ConnectionStatusChanged
from chat_sync.domain.value_objects.enums import ConnectionStatus
from chat_sync.domain.value_objects.ids import NORMAL_CLOSURE
from chat_sync.infrastructure.ws.manager import backoff_delay
from tests.conftest import settle, wire_message


def _statuses(signals) -> list[ConnectionStatusChanged]:
    events: list[ConnectionStatusChanged] = []
    signals.subscribe(ConnectionStatusChanged, events.append)
    return events


def test_backoff_delay_doubles_and_caps():
    assert [backoff_delay(n, 1.0, 30.0) for n in range(7)] == [1, 2, 4, 8, 16, 30, 30]
    assert backoff_delay(0, 0.5, 30.0) == 0.5


@pytest.mark.asyncio
async def test_connect_passes_tenant_and_credential(manager_factory, transport, signals):
    events = _statuses(signals)
    manager = manager_factory()

    await manager.connect()

    assert manager.state == ConnectionStatus.CONNECTED
    assert manager.is_connected
    assert transport.urls == ["ws://chat.test/ws?businessId=biz-1&token=secret"]
    assert [e.status for e in events] == [ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED]
    await manager.disconnect()


@pytest.mark.asyncio
async def test_connect_without_credential_does_nothing(manager_factory, transport):
    manager = manager_factory(credential=None)

    await manager.connect()

    assert transport.urls == []
    assert manager.state == ConnectionStatus.DISCONNECTED


@pytest.mark.asyncio
async def test_frames_reach_the_reconciler_once(manager_factory, transport, reconciler):
    manager = manager_factory()
    await manager.connect()

    transport.last.push(wire_message("m1"))
    transport.last.push(wire_message("m1"))
    await settle()

    assert [m.id for m in reconciler.transcript("c1")] == ["m1"]
    await manager.disconnect()


@pytest.mark.asyncio
async def test_malformed_frame_is_dropped_and_stream_continues(manager_factory, transport, reconciler):
    manager = manager_factory()
    await manager.connect()

    transport.last.push("{garbage")
    transport.last.push({"type": "message_status", "messageId": "m1", "status": "warp"})
    transport.last.push(wire_message("m2"))
    await settle()

    assert manager.is_connected
    assert [m.id for m in reconciler.transcript("c1")] == ["m2"]
    await manager.disconnect()


@pytest.mark.asyncio
async def test_failed_connects_back_off_then_give_up(manager_factory, transport, clock, signals):
    events = _statuses(signals)
    transport.always_fail = True
    manager = manager_factory()

    await manager.connect()
    await settle()
    assert manager.state == ConnectionStatus.RECONNECTING
    assert manager.retry_pending
    assert clock.sleeps == [1]

    for _ in range(5):
        clock.release()
        await settle()

    assert clock.sleeps == [1, 2, 4, 8, 16]
    assert len(transport.urls) == 6
    assert manager.state == ConnectionStatus.DISCONNECTED
    assert not manager.retry_pending
    assert events[-1].exhausted is True
    assert [e.delay for e in events if e.status == ConnectionStatus.RECONNECTING] == [1, 2, 4, 8, 16]


@pytest.mark.asyncio
async def test_backoff_is_capped(manager_factory, transport, clock):
    transport.always_fail = True
    manager = manager_factory(max_delay=5.0, max_attempts=10)

    await manager.connect()
    await settle()
    for _ in range(4):
        clock.release()
        await settle()

    assert clock.sleeps == [1, 2, 4, 5, 5]
    await manager.disconnect()


@pytest.mark.asyncio
async def test_successful_connect_resets_backoff(manager_factory, transport, clock):
    transport.fail_next = 2
    manager = manager_factory()

    await manager.connect()
    await settle()
    clock.release()
    await settle()
    clock.release()
    await settle()

    assert manager.is_connected
    assert manager.failure_count == 0
    assert manager.current_delay is None

    transport.last.drop()
    await settle()

    assert manager.state == ConnectionStatus.RECONNECTING
    assert clock.sleeps == [1, 2, 1]
    await manager.disconnect()


@pytest.mark.asyncio
async def test_dropped_connection_is_replaced(manager_factory, transport, clock):
    manager = manager_factory()
    await manager.connect()
    first = transport.last

    first.drop()
    await settle()
    assert manager.state == ConnectionStatus.RECONNECTING
    assert manager.current_delay == 1

    clock.release()
    await settle()

    assert manager.is_connected
    assert len(transport.connections) == 2
    assert transport.last is not first
    await manager.disconnect()


@pytest.mark.asyncio
async def test_server_normal_close_does_not_retry(manager_factory, transport, clock):
    manager = manager_factory()
    await manager.connect()

    transport.last.drop(NORMAL_CLOSURE)
    await settle()

    assert manager.state == ConnectionStatus.CLOSED
    assert not manager.retry_pending
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_disconnect_cancels_pending_retry(manager_factory, transport, clock):
    transport.always_fail = True
    manager = manager_factory()
    await manager.connect()
    await settle()
    assert manager.retry_pending

    await manager.disconnect()
    clock.release()
    await settle()

    assert manager.state == ConnectionStatus.CLOSED
    assert not manager.retry_pending
    assert len(transport.urls) == 1


@pytest.mark.asyncio
async def test_disconnect_is_idempotent(manager_factory, transport, signals):
    events = _statuses(signals)
    manager = manager_factory()
    await manager.connect()
    conn = transport.last

    await manager.disconnect()
    await manager.disconnect()

    assert conn.closed_with == NORMAL_CLOSURE
    assert manager.state == ConnectionStatus.CLOSED
    assert [e.status for e in events].count(ConnectionStatus.CLOSED) == 1


@pytest.mark.asyncio
async def test_concurrent_connects_open_one_connection(manager_factory, transport):
    transport.gate = asyncio.Event()
    manager = manager_factory()

    pending = asyncio.create_task(manager.connect())
    await settle()
    await manager.connect()
    transport.gate.set()
    await pending

    assert len(transport.urls) == 1
    assert len(transport.connections) == 1
    assert manager.is_connected
    await manager.disconnect()


@pytest.mark.asyncio
async def test_disconnect_during_handshake_cancels_it(manager_factory, transport):
    transport.gate = asyncio.Event()
    manager = manager_factory()

    pending = asyncio.create_task(manager.connect())
    await settle()
    await manager.disconnect()
    transport.gate.set()
    await pending
    await settle()

    assert manager.state == ConnectionStatus.CLOSED
    assert transport.in_flight == 0
    assert transport.connections == []


@pytest.mark.asyncio
async def test_reconnect_during_handshake_keeps_one_open_outstanding(manager_factory, transport):
    transport.gate = asyncio.Event()
    manager = manager_factory()

    first = asyncio.create_task(manager.connect())
    await settle()
    second = asyncio.create_task(manager.reconnect())
    await settle()

    assert len(transport.urls) == 2
    assert transport.in_flight == 1
    assert transport.max_in_flight == 1

    transport.gate.set()
    await first
    await second
    await settle()

    assert len(transport.connections) == 1
    assert manager.is_connected
    await manager.disconnect()


@pytest.mark.asyncio
async def test_send_requires_open_connection(manager_factory, transport):
    manager = manager_factory()
    assert await manager.send({"type": "typing"}) is False

    await manager.connect()
    assert await manager.send({"type": "typing", "conversationId": "c1", "isTyping": True}) is True
    assert transport.last.sent == [{"type": "typing", "conversationId": "c1", "isTyping": True}]

    transport.last.drop()
    await settle()
    assert await manager.send({"type": "typing"}) is False
    await manager.disconnect()


@pytest.mark.asyncio
async def test_seen_frames_are_forgotten_on_new_connection(manager_factory, transport, clock, router):
    manager = manager_factory()
    await manager.connect()
    transport.last.push(wire_message("m1"))
    await settle()
    assert router.seen_count == 1

    transport.last.drop()
    await settle()
    clock.release()
    await settle()

    assert manager.is_connected
    assert router.seen_count == 0
    await manager.disconnect()


@pytest.mark.asyncio
async def test_manual_reconnect_after_giving_up(manager_factory, transport, clock):
    transport.always_fail = True
    manager = manager_factory(max_attempts=1)
    await manager.connect()
    await settle()
    clock.release()
    await settle()
    assert manager.state == ConnectionStatus.DISCONNECTED

    transport.always_fail = False
    await manager.reconnect()

    assert manager.is_connected
    assert manager.failure_count == 0
    await manager.disconnect()


@pytest.mark.asyncio
async def test_reconnect_replaces_live_connection(manager_factory, transport):
    manager = manager_factory()
    await manager.connect()
    first = transport.last

    await manager.reconnect()
    await settle()

    assert manager.is_connected
    assert first.closed_with == NORMAL_CLOSURE
    assert len(transport.connections) == 2
    await manager.disconnect()


@pytest.mark.asyncio
async def test_manual_reconnect_during_backoff_resets_delay(manager_factory, transport, clock):
    transport.always_fail = True
    manager = manager_factory()
    await manager.connect()
    await settle()
    clock.release()
    await settle()
    clock.release()
    await settle()
    assert clock.sleeps == [1, 2, 4]
    assert len(transport.urls) == 3

    await manager.reconnect()
    await settle()

    assert len(transport.urls) == 4
    assert clock.sleeps == [1, 2, 4, 1]
    assert manager.failure_count == 1

    clock.release()
    await settle()
    assert len(transport.urls) == 5
    await manager.disconnect()
