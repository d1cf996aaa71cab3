"""Leader election and audio-unlock gating for playback side effects."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable

from vgmusic.services.audio_backend import AudioSubsystem
from vgmusic.session import Session, User

logger = logging.getLogger(__name__)

PlaybackAction = Callable[[], Awaitable[None]]


def elect_leader(users: Iterable[User]) -> User | None:
    """Return the connected GM with the smallest id, identically on every client."""
    candidates = [user for user in users if user.is_gm and user.active]
    if not candidates:
        return None
    return min(candidates, key=lambda user: user.id)


def is_leader(session: Session) -> bool:
    leader = elect_leader(session.users)
    return leader is not None and leader.id == session.user_id


class AudioUnlockGate:
    """Defers one playback action until the audio subsystem unlocks.

    Only the most recently registered action survives: a newer registration
    replaces an unfired one, which is then dropped.
    """

    def __init__(self, audio: AudioSubsystem) -> None:
        self._audio = audio
        self._pending: PlaybackAction | None = None
        self._listening = False

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    async def run(self, action: PlaybackAction) -> None:
        if self._audio.unlocked:
            await action()
            return
        if self._pending is not None:
            logger.debug("Replacing deferred playback action awaiting audio unlock")
        self._pending = action
        if not self._listening:
            self._listening = True
            self._audio.add_unlock_listener(self._on_unlock)
        logger.info("Audio locked; playback deferred until the next user gesture")

    async def _on_unlock(self) -> None:
        self._listening = False
        self._audio.remove_unlock_listener(self._on_unlock)
        action, self._pending = self._pending, None
        if action is None:
            return
        try:
            await action()
        except Exception:
            logger.warning("Deferred playback action failed", exc_info=True)
