"""Playback synchronization between the shared state record and one audio device.

`PlaybackEngine` is the device authority. It binds at most one `AudioDevice`
to the current track, mirrors host intent (play/pause/seek/volume/track) into
that device, and translates device events back into `PlaybackStore` writes.
Engine writes are tagged with `ENGINE_ORIGIN` so the reconciliation listener
never turns an observed device event back into a device command.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass
from functools import partial
from typing import Any, Literal

from cadence_player.events import (
    AuthRequired,
    LoadError,
    PlaybackBlocked,
    PlaybackEnded,
    TrackChanged,
)
from cadence_player.services.audio_device import (
    AudioDevice,
    AuthRejected,
    CanPlay,
    DeviceError,
    DeviceEvent,
    DeviceFactory,
    DeviceFailed,
    Ended,
    MetadataLoaded,
    PlaybackRefused,
    TimeUpdated,
)
from cadence_player.services.credentials import (
    CredentialProvider,
    has_credential,
    is_remote_url,
    with_credential,
)
from cadence_player.services.media_session import (
    MEDIA_ACTIONS,
    MediaMetadata,
    MediaSession,
)
from cadence_player.services.playback_state import (
    ENGINE_ORIGIN,
    PlaybackStore,
    StateChange,
    Track,
    push_history,
    remove_first,
)
from cadence_player.services.track_order import DIRECTION, decide_advance

logger = logging.getLogger(__name__)

PLAY_OUTCOME = Literal[
    "playing", "deferred", "auth_required", "blocked", "load_error", "no_track"
]
SEEK_GUARD_S = 0.03
END_EPSILON_S = 0.5
POSITION_EPSILON_S = 0.05
CONSISTENCY_TOLERANCE_S = 1.0


def format_user_error(
    *, what_failed: str, likely_cause: str, next_step: str, detail: str | None = None
) -> str:
    message = f"{what_failed}\nLikely cause: {likely_cause}\nNext step: {next_step}"
    if detail:
        message = f"{message}\nDetails: {detail}"
    return message


@dataclass(frozen=True)
class SyncReport:
    """Result of comparing declared state against device truth."""

    consistent: bool
    issues: tuple[str, ...] = ()


class PlaybackEngine:
    """Owns the single audio device and keeps it in step with `PlaybackStore`."""

    def __init__(
        self,
        *,
        store: PlaybackStore,
        device_factory: DeviceFactory,
        credentials: CredentialProvider,
        media_session: MediaSession | None = None,
        emit_event: Callable[[object], Awaitable[None]] | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
        seek_guard_s: float = SEEK_GUARD_S,
        end_epsilon_s: float = END_EPSILON_S,
    ) -> None:
        self._store = store
        self._device_factory = device_factory
        self._credentials = credentials
        self._media_session = media_session
        self._emit_event = emit_event
        self._rng = rng or random.Random()
        self._clock = clock
        self._seek_guard_s = max(0.0, seek_guard_s)
        self._end_epsilon_s = max(0.0, end_epsilon_s)
        self._device: AudioDevice | None = None
        self._device_track: Track | None = None
        self._device_ready = False
        self._pending_play = False
        self._resume_at: float | None = None
        self._guard_until = 0.0
        self._end_handled = False
        self._initialized = False
        self._swap_lock = asyncio.Lock()
        self._intent_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task[Any]] = set()
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def store(self) -> PlaybackStore:
        return self._store

    @property
    def device(self) -> AudioDevice | None:
        return self._device

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def pending_play(self) -> bool:
        return self._pending_play

    def attach(self) -> None:
        """Start mirroring host writes to the store into the device."""
        if self._unsubscribe is None:
            self._unsubscribe = self._store.subscribe(self._on_state_change)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def settle(self) -> None:
        """Wait until every reconciliation task spawned by host writes is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def select_track(
        self,
        track: Track,
        resume_position: float | None = None,
        *,
        from_queue: bool = False,
    ) -> bool:
        """Bind a device for `track`; returns whether a new device was created."""
        if from_queue:
            self._write(queue=remove_first(self._store.state.queue, track.id))
        return await self._bind(track, resume_position=resume_position, force=False)

    async def play(self) -> PLAY_OUTCOME:
        """Start or resume playback; failures are reported, never raised."""
        track = self._store.state.current_track
        if track is None:
            logger.debug("Play ignored: no track selected.")
            self._write(is_playing=False, pending_play=False)
            return "no_track"
        if (
            self._device is None
            or self._device_track is None
            or self._device_track.id != track.id
            or self._store.state.status == "error"
        ):
            await self.select_track(track)
            if self._store.state.status == "error":
                return "load_error"
        track = self._device_track or track
        if _needs_credential(track):
            expected_url = self._resolve_url(track)
            if not has_credential(expected_url):
                return await self._auth_required(track, "No credential available.")
            if self._device is None or self._device.url != expected_url:
                # The device was bound before a credential existed or it rotated.
                await self._bind(
                    track, resume_position=self._store.state.position, force=True
                )
        if not self._device_ready:
            self._pending_play = True
            self._write(pending_play=True)
            logger.debug("Play deferred until track %s can play.", track.id)
            return "deferred"
        return await self._start_device(retry=False)

    async def pause(self) -> None:
        """Pause the device if present; always succeeds."""
        self._pending_play = False
        if self._device is not None:
            await self._device_command("pause", self._device.pause())
        state = self._store.state
        status = "paused" if state.status == "playing" else state.status
        self._write(is_playing=False, pending_play=False, status=status)

    async def toggle_play_pause(self) -> None:
        state = self._store.state
        if state.is_playing or self._pending_play:
            await self.pause()
            return
        await self.play()

    async def seek(self, position: float) -> float:
        """Clamp, write optimistically and hold off stale device time updates."""
        state = self._store.state
        target = _clamp(float(position), 0.0, state.duration)
        self._guard_until = self._clock() + self._seek_guard_s
        self._write(position=target)
        if state.duration <= 0 or target < state.duration - self._end_epsilon_s:
            self._end_handled = False
        if self._device is not None:
            await self._device_command("seek", self._device.seek(target))
        return target

    async def set_volume(self, volume: int) -> int:
        self._write(volume=volume)
        level = self._store.state.volume
        if self._device is not None:
            await self._device_command("volume", self._device.set_volume(level))
        return level

    async def advance(self, direction: DIRECTION = "next") -> PLAY_OUTCOME | None:
        """Move to the next/previous track per queue, order and repeat policy."""
        decision = decide_advance(self._store.state, direction, self._rng)
        if decision is None:
            return None
        logger.debug(
            "Advance %s -> track %s (queue=%s restart=%s)",
            direction,
            decision.track.id,
            decision.from_queue,
            decision.restart,
        )
        await self.select_track(decision.track, from_queue=decision.from_queue)
        if decision.restart:
            await self.seek(0.0)
        return await self.play()

    async def cleanup(self) -> None:
        """Release the device and media-session hooks; the engine starts over."""
        self._pending_play = False
        async with self._swap_lock:
            await self._release_device()
        self._unregister_media_session()
        self._initialized = False
        self._write(
            current_track=None,
            is_playing=False,
            position=0.0,
            duration=0.0,
            status="empty",
            pending_play=False,
        )

    def check_consistency(
        self, tolerance_s: float = CONSISTENCY_TOLERANCE_S
    ) -> SyncReport:
        """Compare declared intent/position with device truth."""
        state = self._store.state
        device = self._device
        issues: list[str] = []
        if state.current_track is None:
            if device is not None:
                issues.append("device bound without a current track")
        elif device is None:
            issues.append("current track has no device")
        else:
            if self._device_track is None or (
                self._device_track.id != state.current_track.id
            ):
                issues.append("device bound to a different track")
            if state.is_playing == device.paused:
                issues.append(
                    f"is_playing={state.is_playing} but device paused={device.paused}"
                )
            if abs(state.position - device.current_time) >= tolerance_s:
                issues.append(
                    f"position {state.position:.2f}s vs device "
                    f"{device.current_time:.2f}s"
                )
        if issues:
            logger.warning("Playback state out of sync: %s", "; ".join(issues))
        return SyncReport(consistent=not issues, issues=tuple(issues))

    def is_healthy(self) -> bool:
        device = self._device
        if self._store.state.current_track is None:
            return device is None
        if device is None or device.error is not None or not device.ready:
            return False
        return self.check_consistency().consistent

    async def force_resync(self) -> None:
        """Re-create the device and re-apply track, position and play intent."""
        state = self._store.state
        track = state.current_track
        if track is None:
            await self.cleanup()
            return
        logger.info("Forcing playback resync for track %s.", track.id)
        await self._bind(track, resume_position=state.position, force=True)
        if state.is_playing:
            await self.play()

    async def _bind(
        self, track: Track, *, resume_position: float | None, force: bool
    ) -> bool:
        url = self._resolve_url(track)
        async with self._swap_lock:
            if (
                not force
                and self._device is not None
                and self._device_track is not None
                and self._device_track.id == track.id
                and self._device.url == url
                and self._device.error is None
                and self._store.state.status != "error"
            ):
                logger.debug("Track %s already bound; keeping device.", track.id)
                self._device_track = track
                self._write(current_track=track)
                return False
            self._pending_play = False
            await self._release_device()
            device = self._device_factory(url)
            self._device = device
            self._device_track = track
            self._device_ready = False
            self._end_handled = False
            self._initialized = True
            resume = max(0.0, float(resume_position or 0.0))
            self._resume_at = resume if resume > 0 else None
            state = self._store.state
            self._write(
                current_track=track,
                duration=track.duration or 0.0,
                position=resume,
                history=push_history(state.history, track),
                status="loading",
                pending_play=False,
                error=None,
                error_kind=None,
            )
            device.set_event_handler(partial(self._dispatch_device_event, device))
            await self._device_command("volume", device.set_volume(state.volume))
            logger.debug("Bound device for track %s.", track.id)
        await self._emit(TrackChanged(track))
        try:
            await device.load()
        except Exception as exc:
            await self._load_failed(track, str(exc))
        return True

    async def _release_device(self) -> None:
        device = self._device
        if device is None:
            return
        self._device = None
        self._device_track = None
        self._device_ready = False
        self._resume_at = None
        try:
            await self._device_command("pause", device.pause())
        finally:
            device.set_event_handler(None)
            await device.release()
        logger.debug("Released device for %s.", device.url)

    async def _device_command(self, name: str, command: Awaitable[None]) -> None:
        """Run a transport command; a device that cannot serve it only logs."""
        try:
            await command
        except DeviceError as exc:
            logger.warning("Device %s command failed: %s", name, exc)

    async def _start_device(self, *, retry: bool) -> PLAY_OUTCOME:
        device = self._device
        track = self._device_track
        if device is None or track is None:
            return "no_track"
        try:
            await device.play()
        except AuthRejected as exc:
            return await self._auth_required(track, str(exc))
        except PlaybackRefused as exc:
            retry_scheduled = not retry
            self._pending_play = retry_scheduled
            self._write(
                is_playing=False,
                pending_play=retry_scheduled,
                error=format_user_error(
                    what_failed="Playback was blocked.",
                    likely_cause="The platform refused to start audio without a user gesture.",
                    next_step="Press play again.",
                    detail=str(exc),
                ),
                error_kind="blocked",
            )
            logger.warning(
                "Playback of %s blocked (retry scheduled: %s): %s",
                track.id,
                retry_scheduled,
                exc,
            )
            await self._emit(PlaybackBlocked(track, retry_scheduled))
            return "blocked"
        except Exception as exc:
            await self._load_failed(track, str(exc))
            return "load_error"
        self._pending_play = False
        self._write(
            is_playing=True,
            pending_play=False,
            status="playing",
            error=None,
            error_kind=None,
        )
        self._register_media_session()
        return "playing"

    async def _auth_required(self, track: Track, detail: str) -> PLAY_OUTCOME:
        self._pending_play = False
        self._write(
            is_playing=False,
            pending_play=False,
            error=format_user_error(
                what_failed="Playback needs you to sign in again.",
                likely_cause="The stream credential is missing or expired.",
                next_step="Log in again, then press play.",
                detail=detail,
            ),
            error_kind="auth_required",
        )
        logger.warning("Playback of %s requires authentication: %s", track.id, detail)
        await self._emit(AuthRequired(track))
        return "auth_required"

    async def _load_failed(self, track: Track, message: str) -> None:
        self._pending_play = False
        self._write(
            is_playing=False,
            pending_play=False,
            status="error",
            error=format_user_error(
                what_failed="Track unavailable.",
                likely_cause="The stream could not be loaded or decoded.",
                next_step="Check the connection or pick another track.",
                detail=message,
            ),
            error_kind="load_error",
        )
        logger.warning("Playback of %s failed to load: %s", track.id, message)
        await self._emit(LoadError(track, message))

    async def _dispatch_device_event(
        self, device: AudioDevice, event: DeviceEvent
    ) -> None:
        if device is not self._device:
            logger.debug("Ignoring %s from superseded device.", type(event).__name__)
            return
        await self._handle_device_event(event)

    async def _handle_device_event(self, event: DeviceEvent) -> None:
        """Translate device events into state writes and end-of-track handling."""
        if isinstance(event, TimeUpdated):
            if self._clock() < self._guard_until:
                return
            state = self._store.state
            if abs(event.position - state.position) >= POSITION_EPSILON_S:
                self._write(position=event.position)
            if (
                state.is_playing
                and state.duration > 0
                and event.position >= state.duration - self._end_epsilon_s
            ):
                await self._handle_end()
        elif isinstance(event, MetadataLoaded):
            self._apply_metadata(max(0.0, event.duration))
            if self._resume_at is not None:
                target = self._resume_at
                self._resume_at = None
                await self.seek(target)
            self._update_media_metadata()
        elif isinstance(event, CanPlay):
            self._device_ready = True
            if self._store.state.status == "loading":
                self._write(status="ready")
            if self._pending_play:
                self._pending_play = False
                self._write(pending_play=False)
                await self._start_device(retry=True)
        elif isinstance(event, Ended):
            await self._handle_end()
        elif isinstance(event, DeviceFailed):
            track = self._device_track
            if track is not None:
                await self._load_failed(track, event.message)

    def _apply_metadata(self, duration: float) -> None:
        state = self._store.state
        track = self._device_track
        if track is None or duration <= 0 or track.duration:
            self._write(duration=duration)
            return
        backfilled = track.with_duration(duration)
        self._device_track = backfilled
        self._write(
            duration=duration,
            current_track=backfilled,
            playlist=tuple(
                backfilled if item.id == track.id else item for item in state.playlist
            ),
        )

    async def _handle_end(self) -> None:
        if self._end_handled:
            return
        self._end_handled = True
        track = self._device_track
        if track is None:
            return
        await self._emit(PlaybackEnded(track))
        repeat = self._store.state.repeat
        logger.debug("Track %s ended (repeat=%s).", track.id, repeat)
        if repeat == "one":
            await self.seek(0.0)
            await self.play()
        elif repeat == "all":
            await self.advance("next")
        else:
            await self.pause()
            await self.seek(0.0)
            self._write(status="ended")

    def _register_media_session(self) -> None:
        session = self._media_session
        if session is None:
            return
        session.set_action_handler("play", self.play)
        session.set_action_handler("pause", self.pause)
        session.set_action_handler("previoustrack", partial(self.advance, "previous"))
        session.set_action_handler("nexttrack", partial(self.advance, "next"))
        self._update_media_metadata()

    def _unregister_media_session(self) -> None:
        session = self._media_session
        if session is None:
            return
        session.metadata = None
        for action in MEDIA_ACTIONS:
            session.set_action_handler(action, None)

    def _update_media_metadata(self) -> None:
        session = self._media_session
        track = self._store.state.current_track
        if session is None or track is None:
            return
        session.metadata = MediaMetadata.from_track(track)

    def _on_state_change(self, change: StateChange) -> None:
        """Mirror host intent writes into the device through the entry points."""
        if change.origin == ENGINE_ORIGIN:
            return
        current = change.current
        if "current_track" in change.changed:
            track = current.current_track
            if track is None:
                self._spawn(self.cleanup())
            else:
                self._spawn(self._follow_track(track, play=current.is_playing))
        elif "is_playing" in change.changed:
            self._spawn(self.play() if current.is_playing else self.pause())
        if "volume" in change.changed:
            self._spawn(self.set_volume(current.volume))
        if "position" in change.changed:
            self._spawn(self.seek(current.position))

    async def _follow_track(self, track: Track, *, play: bool) -> None:
        await self.select_track(track)
        if play:
            await self.play()

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning("Host intent ignored: no running event loop.")
            return
        task = loop.create_task(self._run_intent(coro))
        self._tasks.add(task)
        task.add_done_callback(self._on_intent_done)

    async def _run_intent(self, coro: Coroutine[Any, Any, Any]) -> None:
        async with self._intent_lock:
            await coro

    def _on_intent_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Host intent reconciliation failed.", exc_info=exc)

    def _resolve_url(self, track: Track) -> str:
        if not _needs_credential(track):
            return track.url
        return with_credential(track.url, self._credentials.get_token())

    def _write(self, **changes: Any) -> None:
        self._store.update(origin=ENGINE_ORIGIN, **changes)

    async def _emit(self, event: object) -> None:
        if self._emit_event is None:
            return
        await self._emit_event(event)


def _needs_credential(track: Track) -> bool:
    return track.requires_auth and is_remote_url(track.url)


def _clamp(value: float, min_value: float, max_value: float) -> float:
    return max(min_value, min(value, max_value))
