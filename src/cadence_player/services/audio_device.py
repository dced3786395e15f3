"""Audio device contracts, event payloads and device-level failures.

`PlaybackEngine` holds at most one `AudioDevice` at a time. A device is bound
to exactly one stream URL for its whole life; switching tracks means releasing
the device and asking a `DeviceFactory` for a new one. Concrete implementations
(fake/VLC) translate engine-specific behavior into these shared commands and
events.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class DeviceEvent:
    """Marker base type for device-originated events."""

    pass


@dataclass(frozen=True)
class TimeUpdated(DeviceEvent):
    """Periodic transport position update in seconds."""

    position: float


@dataclass(frozen=True)
class MetadataLoaded(DeviceEvent):
    """Stream metadata became available (currently duration only)."""

    duration: float


@dataclass(frozen=True)
class CanPlay(DeviceEvent):
    """Enough media is buffered for `play()` to start without stalling."""

    pass


@dataclass(frozen=True)
class Ended(DeviceEvent):
    """Playback reached the end of the media."""

    pass


@dataclass(frozen=True)
class DeviceFailed(DeviceEvent):
    """Decode or network failure reported by the device."""

    message: str


class DeviceError(Exception):
    """Base class for failures raised by `AudioDevice.play`."""


class AuthRejected(DeviceError):
    """Stream host refused the request: credential missing or expired."""


class PlaybackRefused(DeviceError):
    """Playback was refused for policy reasons (autoplay restrictions)."""


class MediaLoadFailed(DeviceError):
    """Media could not be opened or decoded."""


DeviceEventHandler = Callable[[DeviceEvent], Awaitable[None]]


class AudioDevice(Protocol):
    """One live audio output bound to a single URL."""

    @property
    def url(self) -> str: ...

    @property
    def paused(self) -> bool: ...

    @property
    def current_time(self) -> float: ...

    @property
    def duration(self) -> float: ...

    @property
    def ready(self) -> bool: ...

    @property
    def error(self) -> str | None: ...

    def set_event_handler(self, handler: DeviceEventHandler | None) -> None: ...

    async def load(self) -> None: ...

    async def play(self) -> None: ...

    async def pause(self) -> None: ...

    async def seek(self, position: float) -> None: ...

    async def set_volume(self, volume: int) -> None: ...

    async def release(self) -> None: ...


DeviceFactory = Callable[[str], AudioDevice]
