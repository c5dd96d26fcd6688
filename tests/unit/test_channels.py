import threading

import pytest

from screen_switch_agent.core.channels import (
    Channel,
    ChannelClosed,
    HostCommand,
    StatusEvent,
    StatusKind,
    command_channel,
)


def test_receive_returns_items_in_order():
    ch = Channel()
    ch.send(1)
    ch.send(2)

    assert ch.receive(timeout=0) == 1
    assert ch.receive(timeout=0) == 2
    assert ch.receive(timeout=0) is None


def test_bounded_channel_rejects_when_full():
    ch = command_channel(capacity=2)

    assert ch.send(HostCommand.START) is True
    assert ch.send(HostCommand.STOP) is True
    assert ch.send(HostCommand.START) is False


def test_receive_times_out_with_none():
    assert Channel().receive(timeout=0.01) is None


def test_close_drains_then_raises():
    ch = Channel()
    ch.send(HostCommand.STOP)
    ch.close()

    assert ch.send(HostCommand.START) is False
    assert ch.receive(timeout=0) is HostCommand.STOP
    with pytest.raises(ChannelClosed):
        ch.receive(timeout=0)
    with pytest.raises(ChannelClosed):
        ch.receive()


def test_close_wakes_blocked_receiver():
    ch = Channel()
    raised = threading.Event()

    def _receiver():
        try:
            ch.receive()
        except ChannelClosed:
            raised.set()

    t = threading.Thread(target=_receiver)
    t.start()
    ch.close()
    t.join(timeout=2)

    assert raised.is_set()


def test_close_works_on_full_bounded_channel():
    ch = command_channel(capacity=1)
    ch.send(HostCommand.START)
    ch.close()

    assert ch.receive(timeout=0) is HostCommand.START
    with pytest.raises(ChannelClosed):
        ch.receive(timeout=0)


def test_status_event_constructors():
    assert StatusEvent.started().kind is StatusKind.STARTED
    assert StatusEvent.stopped() == StatusEvent(StatusKind.STOPPED)
    err = StatusEvent.error("boom")
    assert err.kind is StatusKind.ERROR
    assert err.message == "boom"
