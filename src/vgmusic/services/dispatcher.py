"""Typed session-event bus driving the music controller.

The handler table is explicit: one handler per notification type, no implicit
registration order. Every handler ends in a reconcile request (possibly
delayed or conditional); none of them touch transport directly.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from vgmusic.events import (
    ApplicationReady,
    AreaActivationChanged,
    AreaEntered,
    AreaMusicFlagsChanged,
    CharacterMusicFlagsChanged,
    CombatAdvanced,
    CombatDeleted,
    InstanceMusicFlagsChanged,
    SessionEvent,
    SettingsChanged,
)
from vgmusic.services.flag_store import FlagStore
from vgmusic.services.music_controller import MusicController

logger = logging.getLogger(__name__)

# Subtree holding a scene's resume offsets; cleared when the scene deactivates.
STALE_SCENE_FLAG = "playlist"
READY_DELAY_S = 1.0

Handler = Callable[[Any], Awaitable[None]]


class SessionEventDispatcher:
    """Routes each session notification type to its single handler."""

    def __init__(
        self,
        controller: MusicController,
        flag_store: FlagStore,
        *,
        ready_delay_s: float = READY_DELAY_S,
    ) -> None:
        self._controller = controller
        self._flags = flag_store
        self._ready_delay_s = max(0.0, ready_delay_s)
        self._ready_task: asyncio.Task[None] | None = None
        self._handlers: dict[type[SessionEvent], Handler] = {
            ApplicationReady: self._on_ready,
            AreaEntered: self._on_reconcile,
            AreaActivationChanged: self._on_area_activation,
            CombatAdvanced: self._on_combat_advanced,
            CombatDeleted: self._on_reconcile,
            AreaMusicFlagsChanged: self._on_reconcile,
            CharacterMusicFlagsChanged: self._on_reconcile,
            InstanceMusicFlagsChanged: self._on_reconcile,
            SettingsChanged: self._on_reconcile,
        }

    @property
    def handled_types(self) -> tuple[type[SessionEvent], ...]:
        return tuple(self._handlers)

    async def dispatch(self, event: SessionEvent) -> None:
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"No handler registered for {type(event).__name__}")
        logger.debug("Dispatching %s", type(event).__name__)
        await handler(event)

    async def wait_ready(self) -> None:
        """Wait for a pending delayed startup reconcile, if any."""
        if self._ready_task is not None:
            await self._ready_task

    async def _on_reconcile(self, _event: SessionEvent) -> None:
        await self._controller.reconcile()

    async def _on_ready(self, _event: ApplicationReady) -> None:
        if self._ready_task is not None and not self._ready_task.done():
            return
        self._ready_task = asyncio.get_running_loop().create_task(
            self._reconcile_after_delay()
        )

    async def _reconcile_after_delay(self) -> None:
        # Give late replicated documents a moment to arrive before the first pass.
        await asyncio.sleep(self._ready_delay_s)
        await self._controller.reconcile()

    async def _on_area_activation(self, event: AreaActivationChanged) -> None:
        if not event.active:
            try:
                await self._flags.unset_flag(event.scene, STALE_SCENE_FLAG)
            except Exception:
                logger.debug(
                    "Ignoring failure clearing %s on %r",
                    STALE_SCENE_FLAG,
                    event.scene,
                    exc_info=True,
                )
        await self._controller.reconcile()

    async def _on_combat_advanced(self, event: CombatAdvanced) -> None:
        if not event.combat.started:
            return
        if event.turn_changed or event.round_changed:
            await self._controller.reconcile()
