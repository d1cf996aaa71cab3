"""Audio subsystem backed by python-vlc, one media player per track.

Every libVLC call runs in order on one dedicated thread per subsystem. Track
transport fields are only written on the event loop, from the snapshot each
command (or end-of-media poll) reports back.
"""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable

from .audio_backend import UnlockListener, describe_track

logger = logging.getLogger(__name__)


def _default_instance_factory() -> Any:
    import vlc

    return vlc.Instance("--no-video")


@dataclass
class _Command:
    name: str
    args: tuple[Any, ...]
    future: asyncio.Future[Any] | None


@dataclass(frozen=True)
class _TransportSnapshot:
    playing: bool
    volume: float
    paused_time: float | None
    time_s: float | None
    length_s: float | None


@dataclass
class _PlayerSlot:
    """Engine-side transport state; only touched on the VLC thread."""

    player: Any
    volume: float
    paused_time: float | None = None
    active: bool = False
    reported: _TransportSnapshot | None = None

    def snapshot(self) -> _TransportSnapshot:
        time_ms = self.player.get_time()
        length_ms = self.player.get_length()
        return _TransportSnapshot(
            playing=self.active,
            volume=self.volume,
            paused_time=self.paused_time,
            time_s=time_ms / 1000 if time_ms >= 0 else None,
            length_s=length_ms / 1000 if length_ms > 0 else None,
        )


class VLCTrack:
    """Track transport translating updates into libVLC player calls.

    The player is created lazily on the first update so that building a
    session from a snapshot never touches libVLC.
    """

    def __init__(
        self,
        subsystem: VLCAudioSubsystem,
        *,
        track_id: str,
        playlist_id: str,
        path: str,
        name: str = "",
        volume: float = 1.0,
        fade_duration_ms: int = 0,
    ) -> None:
        self._subsystem = subsystem
        self.id = track_id
        self.playlist_id = playlist_id
        self.name = name
        self.path = path
        self.playing = False
        self.paused_time: float | None = None
        self.volume = volume
        self.fade_duration_ms = fade_duration_ms
        self._time_s: float | None = None
        self._length_s: float | None = None

    @property
    def current_time(self) -> float | None:
        return self._time_s

    @property
    def duration(self) -> float | None:
        return self._length_s

    async def update(self, **changes: Any) -> None:
        await self._subsystem._submit("update", self, dict(changes), self.volume)

    def _apply_snapshot(self, snapshot: _TransportSnapshot) -> None:
        self.playing = snapshot.playing
        self.volume = snapshot.volume
        self.paused_time = snapshot.paused_time
        self._time_s = snapshot.time_s
        self._length_s = snapshot.length_s


class VLCAudioSubsystem:
    """Desktop audio subsystem; libVLC has no autoplay lock, so it starts unlocked.

    The command thread starts on the first transport update and polls active
    players for end of media between commands.
    """

    def __init__(
        self,
        *,
        instance_factory: Callable[[], Any] | None = None,
        poll_interval_ms: int = 200,
    ) -> None:
        self._instance_factory = instance_factory or _default_instance_factory
        self._poll_interval = poll_interval_ms / 1000
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: queue.Queue[_Command] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._ready: asyncio.Future[None] | None = None
        self._stop_event = threading.Event()

    @property
    def unlocked(self) -> bool:
        return True

    def add_unlock_listener(self, listener: UnlockListener) -> None:
        logger.debug("VLC audio is always unlocked; ignoring listener %r", listener)

    def remove_unlock_listener(self, listener: UnlockListener) -> None:
        return None

    def create_track(
        self,
        track_id: str,
        playlist_id: str,
        *,
        path: str,
        name: str = "",
        volume: float = 1.0,
        fade_duration_ms: int = 0,
    ) -> VLCTrack:
        return VLCTrack(
            self,
            track_id=track_id,
            playlist_id=playlist_id,
            path=path,
            name=name,
            volume=volume,
            fade_duration_ms=fade_duration_ms,
        )

    async def start(self) -> None:
        if self._thread is None:
            self._loop = asyncio.get_running_loop()
            self._ready = self._loop.create_future()
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._thread_main,
                args=(self._ready,),
                name="VLCAudioThread",
                daemon=True,
            )
            self._thread.start()
        assert self._ready is not None
        await asyncio.shield(self._ready)

    async def shutdown(self) -> None:
        if self._thread is None:
            return
        self._stop_event.set()
        self._queue.put(_Command("wake", (), None))
        self._thread.join(timeout=2.0)
        if self._thread.is_alive():
            raise RuntimeError("VLC audio thread did not stop within 2.0 seconds.")
        self._thread = None
        self._ready = None

    async def _submit(self, name: str, *args: Any) -> Any:
        await self.start()
        if self._loop is None or self._thread is None or not self._thread.is_alive():
            raise RuntimeError("VLC audio thread is not running.")
        future: asyncio.Future[Any] = self._loop.create_future()
        self._queue.put(_Command(name, args, future))
        return await future

    def _thread_main(self, ready_future: asyncio.Future[None]) -> None:
        try:
            instance = self._instance_factory()
        except Exception as exc:  # pragma: no cover - depends on VLC install
            logger.error("Failed to create VLC instance: %s", exc)
            self._notify(
                self._resolve_future_exception,
                ready_future,
                RuntimeError("VLC audio unavailable. Ensure VLC/libVLC is installed."),
            )
            return

        self._notify(self._resolve_future_result, ready_future, None)
        slots: dict[VLCTrack, _PlayerSlot] = {}

        while not self._stop_event.is_set():
            try:
                cmd = self._queue.get(timeout=self._poll_interval)
            except queue.Empty:
                cmd = None

            if cmd is not None and cmd.name != "wake":
                try:
                    result = self._handle_command(cmd, instance, slots)
                except Exception as exc:
                    self._notify(self._resolve_future_exception, cmd.future, exc)
                else:
                    self._notify(self._complete, cmd, result)

            self._poll_players(slots)

        for slot in slots.values():
            if slot.active:
                slot.player.stop()
        self._fail_pending(RuntimeError("VLC audio thread stopped."))

    def _handle_command(
        self, cmd: _Command, instance: Any, slots: dict[VLCTrack, _PlayerSlot]
    ) -> Any:
        if cmd.name == "update":
            track, changes, volume = cmd.args
            slot = slots.get(track)
            if slot is None:
                player = instance.media_player_new()
                player.set_media(instance.media_new_path(track.path))
                slot = slots[track] = _PlayerSlot(player, _clamp(float(volume)))
            return track, self._apply_changes(slot, changes)
        raise ValueError(f"Unknown command {cmd.name}")

    def _apply_changes(
        self, slot: _PlayerSlot, changes: dict[str, Any]
    ) -> _TransportSnapshot:
        player = slot.player
        if "volume" in changes:
            volume = _clamp(float(changes["volume"]))
            player.audio_set_volume(_percent(volume))
            slot.volume = volume
        if "paused_time" in changes:
            slot.paused_time = changes["paused_time"]
        if "playing" in changes:
            if changes["playing"]:
                if not slot.active:
                    player.audio_set_volume(_percent(slot.volume))
                    player.play()
                    if slot.paused_time:
                        player.set_time(int(slot.paused_time * 1000))
                slot.active = True
            else:
                player.stop()
                slot.active = False
        slot.reported = slot.snapshot()
        return slot.reported

    def _poll_players(self, slots: dict[VLCTrack, _PlayerSlot]) -> None:
        for track, slot in slots.items():
            if not slot.active:
                continue
            if _state_name(slot.player) == "ended":
                logger.info("Reached end of media for %s", describe_track(track))
                slot.player.stop()
                slot.active = False
            snapshot = slot.snapshot()
            if snapshot != slot.reported:
                slot.reported = snapshot
                self._notify(track._apply_snapshot, snapshot)

    def _complete(self, cmd: _Command, result: Any) -> None:
        track, snapshot = result
        track._apply_snapshot(snapshot)
        self._resolve_future_result(cmd.future, None)

    def _fail_pending(self, exc: Exception) -> None:
        while True:
            try:
                cmd = self._queue.get_nowait()
            except queue.Empty:
                return
            self._notify(self._resolve_future_exception, cmd.future, exc)

    def _notify(self, callback: Callable[..., None], *args: Any) -> None:
        if self._loop is None:
            return
        try:
            self._loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            logger.debug("Event loop closed; dropping VLC notification")

    @staticmethod
    def _resolve_future_result(future: asyncio.Future[Any] | None, value: Any) -> None:
        if future is None or future.done():
            return
        future.set_result(value)

    @staticmethod
    def _resolve_future_exception(
        future: asyncio.Future[Any] | None, exc: Exception
    ) -> None:
        if future is None or future.done():
            return
        future.set_exception(exc)


def _state_name(player: Any) -> str:
    try:
        state = player.get_state()
    except Exception:
        return "error"
    name = getattr(state, "name", None) or str(state).rpartition(".")[2]
    return name.lower()


def _clamp(volume: float) -> float:
    return max(0.0, min(volume, 1.0))


def _percent(volume: float) -> int:
    return int(round(volume * 100))
