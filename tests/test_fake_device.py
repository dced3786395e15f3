"""Tests for the fake audio device."""

from __future__ import annotations

import asyncio

import pytest

from cadence_player.services.audio_device import (
    CanPlay,
    DeviceEvent,
    DeviceFailed,
    Ended,
    MediaLoadFailed,
    MetadataLoaded,
    PlaybackRefused,
    TimeUpdated,
)
from cadence_player.services.fake_device import FakeAudioDevice, FakeDeviceFactory


def _run(coro):
    return asyncio.run(coro)


def _recording(device: FakeAudioDevice) -> list[DeviceEvent]:
    events: list[DeviceEvent] = []

    async def handler(event: DeviceEvent) -> None:
        events.append(event)

    device.set_event_handler(handler)
    return events


def test_load_reports_metadata_then_can_play() -> None:
    async def run() -> None:
        device = FakeAudioDevice("a.mp3", media_duration=30.0)
        events = _recording(device)
        await device.load()
        assert events == [MetadataLoaded(30.0), CanPlay()]
        assert device.ready is True
        assert device.duration == 30.0

    _run(run())


def test_manual_loading_waits_for_finish() -> None:
    async def run() -> None:
        device = FakeAudioDevice("a.mp3", auto_load=False)
        events = _recording(device)
        await device.load()
        assert events == []
        assert device.ready is False
        await device.finish_loading()
        assert device.ready is True

    _run(run())


def test_advance_reports_time_and_end() -> None:
    async def run() -> None:
        device = FakeAudioDevice("a.mp3", media_duration=10.0)
        events = _recording(device)
        await device.load()
        await device.play()
        await device.advance(4.0)
        await device.advance(10.0)
        assert events[2:] == [TimeUpdated(4.0), TimeUpdated(10.0), Ended()]
        assert device.paused is True
        assert device.current_time == 10.0

    _run(run())


def test_advance_is_ignored_while_paused() -> None:
    async def run() -> None:
        device = FakeAudioDevice("a.mp3")
        events = _recording(device)
        await device.advance(5.0)
        assert events == []
        assert device.current_time == 0.0

    _run(run())


def test_queued_play_failures_raise_in_order() -> None:
    async def run() -> None:
        device = FakeAudioDevice("a.mp3")
        device.queue_play_failure(PlaybackRefused("autoplay"))
        with pytest.raises(PlaybackRefused):
            await device.play()
        await device.play()
        assert device.paused is False
        assert device.play_calls == 2

    _run(run())


def test_release_detaches_handler_and_rejects_play() -> None:
    async def run() -> None:
        device = FakeAudioDevice("a.mp3")
        events = _recording(device)
        await device.release()
        assert device.released is True
        assert device.has_handler is False
        await device.emit(CanPlay())
        assert events == []
        with pytest.raises(MediaLoadFailed):
            await device.play()

    _run(run())


def test_fail_emits_device_failed() -> None:
    async def run() -> None:
        device = FakeAudioDevice("a.mp3")
        events = _recording(device)
        await device.fail("network down")
        assert events == [DeviceFailed("network down")]
        assert device.error == "network down"

    _run(run())


def test_seek_clamps_to_duration() -> None:
    async def run() -> None:
        device = FakeAudioDevice("a.mp3", media_duration=20.0)
        await device.load()
        await device.seek(50.0)
        assert device.current_time == 20.0
        assert device.seek_calls == [50.0]

    _run(run())


def test_factory_uses_duration_by_url_without_query() -> None:
    factory = FakeDeviceFactory(
        durations={"https://x/a.mp3": 42.0}, default_duration=7.0
    )
    first = factory("https://x/a.mp3?token=abc")
    second = factory("https://x/b.mp3")
    assert factory.creation_count == 2
    assert factory.latest is second
    assert factory.live_devices() == [first, second]

    async def run() -> None:
        await first.load()
        await second.load()
        await first.release()

    _run(run())
    assert first.duration == 42.0
    assert second.duration == 7.0
    assert factory.live_devices() == [second]
