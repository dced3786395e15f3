"""Textual TUI host for cadence-player."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

from textual.app import App, ComposeResult
from textual.widgets import Footer, Header

from . import __version__
from .events import AuthRequired, LoadError, PlaybackBlocked, TrackChanged
from .logging_utils import setup_logging
from .paths import log_dir, state_path, token_path
from .runtime_config import resolve_backend_name, resolve_log_level
from .services.audio_device import DeviceFactory
from .services.credentials import CredentialProvider, TokenFileCredentialProvider
from .services.fake_device import FakeDeviceFactory
from .services.media_session import MediaSession
from .services.playback_engine import PlaybackEngine
from .services.playback_state import (
    PlaybackState,
    PlaybackStore,
    StateChange,
    Track,
    index_of,
)
from .services.track_loader import (
    TrackSourceError,
    load_playlist_file,
    scan_directory,
)
from .services.vlc_device import VLCDeviceFactory
from .state_store import AppState, load_state, load_state_with_notice, save_state
from .ui.now_playing_pane import NowPlayingPane
from .utils.async_utils import run_blocking
from .version import build_help_epilog

logger = logging.getLogger(__name__)
SEEK_STEP_S = 5.0
VOLUME_STEP = 5
FAKE_TICK_INTERVAL_S = 0.5
STATE_SAVE_DEBOUNCE_S = 1.0
_PERSISTED_FIELDS = frozenset(
    {"volume", "order", "repeat", "current_track", "liked"}
)


class CadencePlayerApp(App):
    TITLE = "cadence-player"
    CSS = """
    Screen {
        layout: vertical;
    }

    #now-playing {
        border: solid white;
        padding: 0 1;
    }
    """

    BINDINGS = [
        ("space", "play_pause", "Play/Pause"),
        ("n", "next_track", "Next"),
        ("p", "previous_track", "Previous"),
        ("left", "seek_back", "Seek -5s"),
        ("right", "seek_forward", "Seek +5s"),
        ("-", "volume_down", "Vol -"),
        ("+", "volume_up", "Vol +"),
        ("o", "cycle_order", "Order"),
        ("r", "cycle_repeat", "Repeat"),
        ("l", "toggle_like", "Like"),
        ("y", "resync", "Resync"),
        ("f7", "media_previous", "Media prev"),
        ("f8", "media_play_pause", "Media play"),
        ("f9", "media_next", "Media next"),
        ("q", "quit", "Quit"),
    ]

    def __init__(
        self,
        *,
        auto_init: bool = True,
        backend_name: str | None = None,
        playlist_path: Path | None = None,
        api_base_url: str | None = None,
        device_factory: DeviceFactory | None = None,
        credentials: CredentialProvider | None = None,
    ) -> None:
        super().__init__()
        self.state = AppState()
        self.store = PlaybackStore()
        self.media_session = MediaSession()
        self.engine: PlaybackEngine | None = None
        self._auto_init = auto_init
        self._backend_name = backend_name
        self._playlist_path = playlist_path
        self._api_base_url = api_base_url
        self._device_factory = device_factory
        self._credentials = credentials
        self._unsubscribe_store = None
        self._state_save_task: asyncio.Task[None] | None = None

    def compose(self) -> ComposeResult:
        yield Header()
        yield NowPlayingPane(id="now-playing")
        yield Footer()

    def on_mount(self) -> None:
        self._update_pane(self.store.state)
        if self._auto_init:
            asyncio.create_task(self._initialize_state())

    async def _initialize_state(self) -> None:
        try:
            self.state, notice = await run_blocking(
                load_state_with_notice, state_path()
            )
            backend_name = resolve_backend_name(
                self._backend_name, self.state.playback_backend
            )
            if self._device_factory is None and backend_name == "vlc":
                if not await run_blocking(_vlc_available):
                    backend_name = "fake"
                    notice = (
                        "VLC unavailable; using fake audio device.\n"
                        "Next step: install VLC/libVLC, then restart with --backend vlc."
                    )
            self.state = replace(
                self.state,
                playback_backend=backend_name,
                api_base_url=self._api_base_url or self.state.api_base_url,
            )
            await run_blocking(save_state, state_path(), self.state)
            self.store.update(
                volume=self.state.volume,
                order=self.state.order,
                repeat=self.state.repeat,
                liked=frozenset(self.state.liked_track_ids),
            )
            self.engine = PlaybackEngine(
                store=self.store,
                device_factory=self._device_factory or _build_device_factory(backend_name),
                credentials=self._credentials
                or TokenFileCredentialProvider(token_path()),
                media_session=self.media_session,
                emit_event=self._handle_engine_event,
            )
            self.engine.attach()
            self._unsubscribe_store = self.store.subscribe(self._on_state_change)
            self._update_pane(self.store.state)
            if notice:
                self.query_one(NowPlayingPane).set_runtime_notice(notice)
            if self._playlist_path is not None:
                await self._load_playlist(self._playlist_path)
        except Exception as exc:
            logger.exception("Failed to initialize app: %s", exc)
            self.query_one(NowPlayingPane).set_runtime_notice(
                "Failed to initialize app.\n"
                "Next step: verify file permissions/paths and review the log file."
            )

    async def _load_playlist(self, path: Path) -> None:
        try:
            if path.is_dir():
                tracks = await run_blocking(scan_directory, path)
            else:
                tracks = await run_blocking(
                    load_playlist_file, path, base_url=self.state.api_base_url
                )
        except TrackSourceError as exc:
            logger.warning("Playlist load failed: %s", exc)
            self.query_one(NowPlayingPane).set_runtime_notice(str(exc))
            return
        self.store.update(playlist=tuple(tracks))
        if not tracks or self.engine is None:
            return
        start, resume = _initial_track(tracks, self.state)
        await self.engine.select_track(start, resume_position=resume)

    async def on_unmount(self) -> None:
        if self._state_save_task is not None:
            self._state_save_task.cancel()
        if self._unsubscribe_store is not None:
            self._unsubscribe_store()
        self._persist_snapshot()
        if self.engine is not None:
            self.engine.detach()
            await self.engine.cleanup()
        await run_blocking(save_state, state_path(), self.state)

    async def action_play_pause(self) -> None:
        if self.engine is None:
            return
        await self.engine.toggle_play_pause()

    async def action_next_track(self) -> None:
        if self.engine is None:
            return
        await self.engine.advance("next")

    async def action_previous_track(self) -> None:
        if self.engine is None:
            return
        await self.engine.advance("previous")

    async def action_seek_back(self) -> None:
        if self.engine is None:
            return
        await self.engine.seek(self.store.state.position - SEEK_STEP_S)

    async def action_seek_forward(self) -> None:
        if self.engine is None:
            return
        await self.engine.seek(self.store.state.position + SEEK_STEP_S)

    async def action_volume_down(self) -> None:
        if self.engine is None:
            return
        await self.engine.set_volume(self.store.state.volume - VOLUME_STEP)

    async def action_volume_up(self) -> None:
        if self.engine is None:
            return
        await self.engine.set_volume(self.store.state.volume + VOLUME_STEP)

    def action_cycle_order(self) -> None:
        order = self.store.cycle_order()
        self.notify(f"Order: {self.store.state.order_label}", timeout=2)
        logger.info("Play order set to %s", order)

    def action_cycle_repeat(self) -> None:
        repeat = self.store.cycle_repeat()
        self.notify(f"Repeat: {repeat}", timeout=2)

    def action_toggle_like(self) -> None:
        track = self.store.state.current_track
        if track is None:
            return
        liked = self.store.toggle_liked(track.id)
        label = "Liked" if liked else "Unliked"
        self.notify(f"{label}: {track.title}", timeout=2)

    async def action_resync(self) -> None:
        if self.engine is None:
            return
        report = self.engine.check_consistency()
        if report.consistent:
            self.notify("Playback already in sync.", timeout=2)
            return
        await self.engine.force_resync()
        self.notify("Playback resynchronized.", timeout=2)

    async def action_media_play_pause(self) -> None:
        state = self.store.state
        action = "pause" if state.is_playing or state.pending_play else "play"
        if not await self.media_session.dispatch(action):
            await self.action_play_pause()

    async def action_media_next(self) -> None:
        if not await self.media_session.dispatch("nexttrack"):
            await self.action_next_track()

    async def action_media_previous(self) -> None:
        if not await self.media_session.dispatch("previoustrack"):
            await self.action_previous_track()

    async def action_quit(self) -> None:
        self.exit()

    async def _handle_engine_event(self, event: object) -> None:
        pane = self.query_one(NowPlayingPane)
        if isinstance(event, AuthRequired):
            pane.set_runtime_notice(f"Sign in again to play {event.track.title}")
            self.notify(
                "Playback needs you to sign in again.\n"
                f"Next step: write a fresh token to '{token_path()}' and press play.",
                severity="error",
                timeout=8,
            )
        elif isinstance(event, LoadError):
            pane.set_runtime_notice(f"Track unavailable: {event.track.title}")
            self.notify(event.message, severity="error", timeout=6)
        elif isinstance(event, PlaybackBlocked):
            if not event.retry_scheduled:
                self.notify("Playback was blocked; press play again.", severity="warning")
        elif isinstance(event, TrackChanged):
            pane.set_runtime_notice(None)

    def _on_state_change(self, change: StateChange) -> None:
        self._update_pane(change.current)
        if change.changed & _PERSISTED_FIELDS:
            self._schedule_state_save()

    def _update_pane(self, state: PlaybackState) -> None:
        self.query_one(NowPlayingPane).update_state(state)

    def _schedule_state_save(self) -> None:
        if self._state_save_task is not None:
            self._state_save_task.cancel()
        self._state_save_task = asyncio.create_task(self._save_state_debounced())

    async def _save_state_debounced(self) -> None:
        try:
            await asyncio.sleep(STATE_SAVE_DEBOUNCE_S)
            self._persist_snapshot()
            await run_blocking(save_state, state_path(), self.state)
        except asyncio.CancelledError:
            return

    def _persist_snapshot(self) -> None:
        playback = self.store.state
        track = playback.current_track
        self.state = replace(
            self.state,
            volume=playback.volume,
            order=playback.order,
            repeat=playback.repeat,
            liked_track_ids=tuple(sorted(playback.liked)),
            last_track_id=track.id if track is not None else self.state.last_track_id,
            last_position=playback.position
            if track is not None
            else self.state.last_position,
        )


def _initial_track(tracks: list[Track], state: AppState) -> tuple[Track, float | None]:
    if state.last_track_id is not None:
        index = index_of(tracks, state.last_track_id)
        if index != -1:
            return tracks[index], state.last_position or None
    return tracks[0], None


def _vlc_available() -> bool:
    try:
        import vlc

        return vlc.Instance() is not None
    except Exception as exc:
        logger.warning("VLC unavailable: %s", exc)
        return False


def _build_device_factory(name: str) -> DeviceFactory:
    logger.info("Playback backend selected: %s", name)
    if name == "vlc":
        return VLCDeviceFactory()
    return FakeDeviceFactory(tick_interval_s=FAKE_TICK_INTERVAL_S)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cadence-player",
        description="Terminal music player with a synchronized playback engine.",
        epilog=build_help_epilog(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument(
        "--quiet", action="store_true", help="Only show warnings and errors"
    )
    parser.add_argument("--log-file", help="Write logs to a file path")
    parser.add_argument(
        "--backend",
        choices=("fake", "vlc"),
        help="Audio device backend to use (fake or vlc).",
    )
    parser.add_argument(
        "--playlist",
        type=Path,
        help="JSON playlist file or a directory of audio files.",
    )
    parser.add_argument(
        "--api-base-url",
        help="Base URL for relative track URLs in a JSON playlist.",
    )
    return parser


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    try:
        persisted = load_state(state_path())
        level = resolve_log_level(
            verbose=args.verbose, quiet=args.quiet, default=persisted.log_level
        )
        setup_logging(
            log_dir=log_dir(),
            level=level,
            console=False,
            log_file=Path(args.log_file) if args.log_file else None,
        )
        logger.info("Starting cadence-player TUI")
        CadencePlayerApp(
            backend_name=args.backend,
            playlist_path=args.playlist,
            api_base_url=args.api_base_url,
        ).run()
        return 0
    except Exception as exc:  # pragma: no cover - top-level safety net
        logger.exception("Fatal startup error: %s", exc)
        print(
            "Startup failed. Verify backend/state/log paths and re-run with --verbose.",
            file=sys.stderr,
        )
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
