"""Fake audio device for deterministic testing and the `fake` backend."""

from __future__ import annotations

import asyncio
from collections import deque
from urllib.parse import urlsplit, urlunsplit

from .audio_device import (
    CanPlay,
    DeviceError,
    DeviceEvent,
    DeviceEventHandler,
    DeviceFailed,
    Ended,
    MediaLoadFailed,
    MetadataLoaded,
    TimeUpdated,
)


class FakeAudioDevice:
    """In-memory device that simulates loading and playback progress.

    With `auto_load` the device reports metadata and readiness as soon as
    `load()` is awaited; otherwise tests drive it with `finish_loading()`.
    A ticker task only runs when `tick_interval_s` is set.
    """

    def __init__(
        self,
        url: str,
        *,
        media_duration: float = 180.0,
        auto_load: bool = True,
        tick_interval_s: float | None = None,
    ) -> None:
        self._url = url
        self._media_duration = media_duration
        self._auto_load = auto_load
        self._tick_interval_s = tick_interval_s
        self._handler: DeviceEventHandler | None = None
        self._play_failures: deque[DeviceError] = deque()
        self._paused = True
        self._position = 0.0
        self._duration = 0.0
        self._ready = False
        self._error: str | None = None
        self._released = False
        self._ticker: asyncio.Task[None] | None = None
        self.volume = 100
        self.play_calls = 0
        self.seek_calls: list[float] = []

    @property
    def url(self) -> str:
        return self._url

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def current_time(self) -> float:
        return self._position

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def released(self) -> bool:
        return self._released

    @property
    def has_handler(self) -> bool:
        return self._handler is not None

    def set_event_handler(self, handler: DeviceEventHandler | None) -> None:
        self._handler = handler

    def queue_play_failure(self, *errors: DeviceError) -> None:
        """Make the next `play()` calls raise the given errors, in order."""
        self._play_failures.extend(errors)

    async def load(self) -> None:
        if self._auto_load:
            await self.finish_loading()

    async def finish_loading(self) -> None:
        """Report metadata and readiness as a browser would after buffering."""
        if self._released:
            return
        self._duration = self._media_duration
        self._ready = True
        await self.emit(MetadataLoaded(self._duration))
        await self.emit(CanPlay())

    async def fail(self, message: str) -> None:
        """Simulate a decode/network failure."""
        self._error = message
        self._paused = True
        self._stop_ticker()
        await self.emit(DeviceFailed(message))

    async def play(self) -> None:
        self.play_calls += 1
        if self._released:
            raise MediaLoadFailed("device released")
        if self._play_failures:
            raise self._play_failures.popleft()
        self._paused = False
        if self._tick_interval_s is not None and self._ticker is None:
            self._ticker = asyncio.create_task(self._ticker_loop())

    async def pause(self) -> None:
        self._paused = True
        self._stop_ticker()

    async def seek(self, position: float) -> None:
        self.seek_calls.append(position)
        self._position = _clamp(position, 0.0, self._duration or position)
        await self.emit(TimeUpdated(self._position))

    async def set_volume(self, volume: int) -> None:
        self.volume = int(_clamp(volume, 0, 100))

    async def release(self) -> None:
        self._handler = None
        self._paused = True
        self._released = True
        self._stop_ticker()

    async def advance(self, seconds: float) -> None:
        """Move the playhead forward, reporting time and end of media."""
        if self._paused or self._released:
            return
        duration = self._duration
        next_pos = self._position + seconds
        ended = duration > 0 and next_pos >= duration
        if ended:
            next_pos = duration
            self._paused = True
            self._stop_ticker()
        self._position = next_pos
        await self.emit(TimeUpdated(next_pos))
        # A handler may already have restarted or released the device.
        if ended and self._paused and not self._released and self._position >= duration:
            await self.emit(Ended())

    async def emit(self, event: DeviceEvent) -> None:
        if self._handler is None:
            return
        await self._handler(event)

    async def _ticker_loop(self) -> None:
        assert self._tick_interval_s is not None
        try:
            while self._ticker is asyncio.current_task() and not self._paused:
                await asyncio.sleep(self._tick_interval_s)
                await self.advance(self._tick_interval_s)
        except asyncio.CancelledError:
            pass

    def _stop_ticker(self) -> None:
        task = self._ticker
        self._ticker = None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()


class FakeDeviceFactory:
    """Builds fake devices and keeps every one it created for inspection."""

    def __init__(
        self,
        *,
        durations: dict[str, float] | None = None,
        default_duration: float = 180.0,
        auto_load: bool = True,
        tick_interval_s: float | None = None,
    ) -> None:
        self._durations = dict(durations or {})
        self._default_duration = default_duration
        self._auto_load = auto_load
        self._tick_interval_s = tick_interval_s
        self.created: list[FakeAudioDevice] = []

    def __call__(self, url: str) -> FakeAudioDevice:
        device = FakeAudioDevice(
            url,
            media_duration=self._durations.get(
                _strip_query(url), self._default_duration
            ),
            auto_load=self._auto_load,
            tick_interval_s=self._tick_interval_s,
        )
        self.created.append(device)
        return device

    @property
    def creation_count(self) -> int:
        return len(self.created)

    @property
    def latest(self) -> FakeAudioDevice | None:
        return self.created[-1] if self.created else None

    def live_devices(self) -> list[FakeAudioDevice]:
        return [device for device in self.created if not device.released]


def _strip_query(url: str) -> str:
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def _clamp(value: float, min_value: float, max_value: float) -> float:
    return max(min_value, min(value, max_value))
