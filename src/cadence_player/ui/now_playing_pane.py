"""Now-playing pane: track, transport status, time, volume and lyrics."""

from __future__ import annotations

from rich.text import Text
from textual.app import ComposeResult
from textual.widget import Widget
from textual.widgets import Static

from cadence_player.services.playback_state import PlaybackState
from cadence_player.utils.time_format import format_time_pair

LABEL_STYLE = "bold #F2C94C"
NOTICE_STYLE = "bold #FF5A36"
LYRIC_STYLE = "italic #56CCF2"
BAR_WIDTH = 30


class NowPlayingPane(Widget):
    DEFAULT_CSS = """
    NowPlayingPane {
        layout: vertical;
        height: auto;
    }

    #np-title, #np-time, #np-status, #np-lyric, #np-next-lyric {
        height: 1;
        width: 1fr;
        overflow: hidden;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._title_line = Static("", id="np-title")
        self._time_line = Static("", id="np-time")
        self._status_line = Static("", id="np-status")
        self._lyric_line = Static("", id="np-lyric")
        self._next_lyric_line = Static("", id="np-next-lyric")
        self._state: PlaybackState | None = None
        self._runtime_notice: str | None = None

    def compose(self) -> ComposeResult:
        yield self._title_line
        yield self._time_line
        yield self._status_line
        yield self._lyric_line
        yield self._next_lyric_line

    @property
    def runtime_notice(self) -> str | None:
        return self._runtime_notice

    def update_state(self, state: PlaybackState) -> None:
        self._state = state
        self._title_line.update(render_title(state))
        self._time_line.update(render_time(state))
        self._lyric_line.update(render_lyric(state))
        self._next_lyric_line.update(Text(state.next_lyric, style="dim"))
        self._update_status_text()

    def set_runtime_notice(self, notice: str | None) -> None:
        self._runtime_notice = notice.strip() if notice else None
        self._update_status_text()

    def _update_status_text(self) -> None:
        if self._state is None:
            return
        self._status_line.update(render_status(self._state, self._runtime_notice))


def render_title(state: PlaybackState) -> Text:
    track = state.current_track
    if track is None:
        return Text("Nothing selected", style="dim")
    text = Text(track.title, style="bold")
    if state.is_liked(track.id):
        text.append(" ♥", style=NOTICE_STYLE)
    if track.artist:
        text.append(" - ")
        text.append(track.artist)
    if track.album:
        text.append(f" ({track.album})", style="dim")
    return text


def render_lyric(state: PlaybackState) -> Text:
    track = state.current_track
    if track is not None and track.untimed_lyrics:
        return Text(" / ".join(track.untimed_lyrics), style="dim")
    return Text(state.current_lyric, style=LYRIC_STYLE)


def render_time(state: PlaybackState) -> Text:
    pos_text, dur_text = format_time_pair(state.position, state.duration)
    filled = int(round(time_fraction(state.position, state.duration) * BAR_WIDTH))
    text = Text()
    text.append("TIME ", style=LABEL_STYLE)
    text.append("#" * filled)
    text.append("-" * (BAR_WIDTH - filled), style="dim")
    text.append(f" {pos_text}/{dur_text}")
    return text


def render_status(state: PlaybackState, notice: str | None = None) -> Text:
    status_text = Text()
    if notice:
        status_text.append("Notice: ", style=NOTICE_STYLE)
        status_text.append(notice.splitlines()[0])
        status_text.append(" | ")
    status_text.append("Status: ", style=LABEL_STYLE)
    status_text.append("waiting" if state.pending_play else state.status)
    status_text.append(" | ")
    status_text.append("Vol: ", style=LABEL_STYLE)
    status_text.append(str(state.volume))
    status_text.append(" | ")
    status_text.append("Order: ", style=LABEL_STYLE)
    status_text.append(state.order_label)
    status_text.append(" | ")
    status_text.append("Repeat: ", style=LABEL_STYLE)
    status_text.append(state.repeat)
    if state.queue:
        status_text.append(" | ")
        status_text.append("Queued: ", style=LABEL_STYLE)
        status_text.append(str(len(state.queue)))
    return status_text


def time_fraction(position: float, duration: float) -> float:
    if duration <= 0:
        return 0.0
    return max(0.0, min(position / duration, 1.0))
