"""VLC audio device using python-vlc.

Each device owns one libVLC media player on a dedicated thread. Commands are
marshalled onto that thread through a queue; observed changes come back to the
event loop as `DeviceEvent`s, where the cached transport fields are updated
before the engine's handler runs.
"""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from cadence_player.utils.async_utils import run_blocking

from .audio_device import (
    CanPlay,
    DeviceEvent,
    DeviceEventHandler,
    DeviceFailed,
    Ended,
    MediaLoadFailed,
    MetadataLoaded,
    TimeUpdated,
)

logger = logging.getLogger(__name__)

JOIN_TIMEOUT_S = 2.0


@dataclass
class _Command:
    name: str
    args: tuple[Any, ...]
    future: asyncio.Future[Any] | None


@dataclass
class _PollState:
    """What the VLC thread has already reported for the bound media."""

    ready: bool = False
    position_ms: int = -1
    duration_ms: int = -1
    ended: bool = False
    failed: bool = False


class VLCAudioDevice:
    """Audio device backed by a dedicated VLC thread for one URL."""

    def __init__(
        self,
        url: str,
        *,
        poll_interval_ms: int = 200,
        instance_factory: Callable[[], Any] | None = None,
    ) -> None:
        self._url = url
        self._poll_interval = poll_interval_ms / 1000
        self._instance_factory = instance_factory
        self._handler: DeviceEventHandler | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: queue.Queue[_Command] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._commands_lock = threading.Lock()
        self._closed = False
        self._paused = True
        self._position = 0.0
        self._duration = 0.0
        self._ready = False
        self._error: str | None = None
        self._volume = 100

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

    def set_event_handler(self, handler: DeviceEventHandler | None) -> None:
        self._handler = handler

    async def load(self) -> None:
        if self._thread is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._closed = False
        ready_future: asyncio.Future[None] = self._loop.create_future()
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._thread_main,
            args=(ready_future,),
            name="VLCDeviceThread",
            daemon=True,
        )
        self._thread.start()
        await ready_future

    async def play(self) -> None:
        await self._submit("play")
        self._paused = False

    async def pause(self) -> None:
        if not self._serving:
            self._paused = True
            return
        await self._submit("pause")
        self._paused = True

    async def seek(self, position: float) -> None:
        self._position = max(0.0, position)
        if self._serving:
            await self._submit("seek_ms", int(self._position * 1000))

    async def set_volume(self, volume: int) -> None:
        self._volume = volume
        if not self._serving:
            return
        await self._submit("set_volume", volume)

    async def release(self) -> None:
        self._handler = None
        self._paused = True
        thread = self._thread
        if thread is None:
            return
        self._stop_event.set()
        self._queue.put(_Command("wake", (), None))
        await run_blocking(thread.join, JOIN_TIMEOUT_S)
        if thread.is_alive():
            raise RuntimeError(
                f"VLC device thread did not stop within {JOIN_TIMEOUT_S} seconds."
            )
        self._thread = None

    @property
    def _serving(self) -> bool:
        """Whether the worker thread is still accepting commands."""
        return self._thread is not None and not self._closed

    async def _submit(self, name: str, *args: Any) -> Any:
        if self._loop is None or self._thread is None:
            raise MediaLoadFailed("VLC device not loaded.")
        future: asyncio.Future[Any] = self._loop.create_future()
        with self._commands_lock:
            if self._closed:
                raise MediaLoadFailed("VLC device stopped.")
            self._queue.put(_Command(name, args, future))
        return await future

    def _close_commands(self) -> None:
        """Stop accepting commands and fail the ones nobody will serve."""
        with self._commands_lock:
            self._closed = True
            pending: list[_Command] = []
            while True:
                try:
                    pending.append(self._queue.get_nowait())
                except queue.Empty:
                    break
        for cmd in pending:
            self._notify_future_exception(
                cmd.future, MediaLoadFailed("VLC device stopped.")
            )

    def _thread_main(self, ready_future: asyncio.Future[None]) -> None:
        try:
            instance = self._create_instance()
            player = instance.media_player_new()
            media = instance.media_new(self._url)
            player.set_media(media)
            player.audio_set_volume(self._volume)
            media.parse_with_options(1, 0)
        except Exception as exc:
            # load() reports this failure; no DeviceFailed event follows.
            self._error = str(exc)
            self._close_commands()
            self._notify_future_exception(
                ready_future,
                MediaLoadFailed(
                    f"VLC device unavailable ({exc}). "
                    "Ensure VLC/libVLC is installed."
                ),
            )
            return

        self._notify_future_result(ready_future, None)
        try:
            self._serve(player, media)
        finally:
            self._close_commands()
            player.stop()
            player.release()
            media.release()

    def _serve(self, player: Any, media: Any) -> None:
        poll = _PollState()
        while not self._stop_event.is_set():
            try:
                cmd = self._queue.get(timeout=self._poll_interval)
            except queue.Empty:
                cmd = None

            if cmd is not None and cmd.name != "wake":
                try:
                    result = self._handle_command(cmd, player)
                    if cmd.name in {"play", "seek_ms"}:
                        poll.ended = False
                    self._notify_future_result(cmd.future, result)
                except Exception as exc:
                    self._notify_future_exception(cmd.future, exc)

            for event in _poll_player(player, media, poll):
                self._emit_event(event)

    def _create_instance(self) -> Any:
        if self._instance_factory is not None:
            return self._instance_factory()
        import vlc

        return vlc.Instance("--no-video")

    def _handle_command(self, cmd: _Command, player: Any) -> Any:
        name = cmd.name
        if name == "play":
            if player.play() == -1:
                raise MediaLoadFailed(f"VLC refused to play {self._url}")
            return None
        if name == "pause":
            player.set_pause(1)
            return None
        if name == "seek_ms":
            (pos,) = cmd.args
            player.set_time(int(pos))
            return None
        if name == "set_volume":
            (vol,) = cmd.args
            player.audio_set_volume(int(vol))
            return None
        raise ValueError(f"Unknown command {name}")

    def _emit_event(self, event: DeviceEvent) -> None:
        if self._loop is None:
            return
        asyncio.run_coroutine_threadsafe(self._deliver(event), self._loop)

    async def _deliver(self, event: DeviceEvent) -> None:
        """Apply an observed event to cached fields, then forward it."""
        if isinstance(event, TimeUpdated):
            self._position = event.position
        elif isinstance(event, MetadataLoaded):
            self._duration = event.duration
        elif isinstance(event, CanPlay):
            self._ready = True
        elif isinstance(event, Ended):
            self._paused = True
            self._position = self._duration
        elif isinstance(event, DeviceFailed):
            self._paused = True
            self._error = event.message
        handler = self._handler
        if handler is None:
            return
        try:
            await handler(event)
        except Exception:
            logger.exception("Device event handler failed for %s", event)

    def _notify_future_result(
        self, future: asyncio.Future[Any] | None, value: Any
    ) -> None:
        if future is None or self._loop is None:
            return
        self._loop.call_soon_threadsafe(_resolve_future_result, future, value)

    def _notify_future_exception(
        self, future: asyncio.Future[Any] | None, exc: Exception
    ) -> None:
        if future is None or self._loop is None:
            return
        self._loop.call_soon_threadsafe(_resolve_future_exception, future, exc)


class VLCDeviceFactory:
    """Creates one `VLCAudioDevice` per URL."""

    def __init__(self, *, poll_interval_ms: int = 200) -> None:
        self._poll_interval_ms = poll_interval_ms

    def __call__(self, url: str) -> VLCAudioDevice:
        return VLCAudioDevice(url, poll_interval_ms=self._poll_interval_ms)


def _poll_player(player: Any, media: Any, poll: _PollState) -> list[DeviceEvent]:
    """Compare libVLC state with what was last reported; return new events."""
    events: list[DeviceEvent] = []
    state = _map_state(player)
    if state == "error":
        if not poll.failed:
            poll.failed = True
            events.append(DeviceFailed("VLC could not open or decode the stream."))
        return events

    duration_ms = max(int(media.get_duration() or 0), int(player.get_length() or 0))
    if duration_ms > 0 and duration_ms != poll.duration_ms:
        poll.duration_ms = duration_ms
        events.append(MetadataLoaded(duration_ms / 1000))
    if not poll.ready and (duration_ms > 0 or _parse_done(media)):
        poll.ready = True
        if duration_ms <= 0:
            events.append(MetadataLoaded(0.0))
        events.append(CanPlay())

    if state in {"playing", "paused"}:
        pos = max(int(player.get_time()), 0)
        if pos != poll.position_ms:
            poll.position_ms = pos
            events.append(TimeUpdated(pos / 1000))
    if state == "ended" and not poll.ended:
        poll.ended = True
        events.append(Ended())
    return events


def _parse_done(media: Any) -> bool:
    try:
        status = media.get_parsed_status()
    except Exception:
        return False
    return getattr(status, "name", "").lower() == "done"


def _map_state(player: Any) -> str:
    try:
        state = player.get_state()
    except Exception:
        return "error"
    name = getattr(state, "name", "").lower()
    if name in {"playing", "paused", "ended", "error", "opening", "buffering"}:
        return name
    return "idle"


def _resolve_future_result(future: asyncio.Future[Any], value: Any) -> None:
    if not future.done():
        future.set_result(value)


def _resolve_future_exception(future: asyncio.Future[Any], exc: Exception) -> None:
    if not future.done():
        future.set_exception(exc)
