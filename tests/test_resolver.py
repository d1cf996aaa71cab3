"""Tests for candidate filtering and winner resolution."""

from __future__ import annotations

import pytest
from music_fixtures import World, declare

from vgmusic.services.context import ContextKind
from vgmusic.services.resolver import rank_contexts, resolve_context
from vgmusic.session import SourceKind
from vgmusic.settings_store import SilentMode


@pytest.fixture
def world() -> World:
    world = World()
    for playlist_id in ("area", "battle", "hero", "villain", "boss", "proto"):
        world.playlist(playlist_id)
    return world


def _winner_playlist(world: World) -> str | None:
    context = resolve_context(world.session, world.settings)
    return context.playlist.id if context is not None else None


def test_empty_candidate_set_resolves_to_silence(world: World) -> None:
    world.scene()
    assert resolve_context(world.session, world.settings) is None


def test_area_context_wins_outside_combat(world: World) -> None:
    world.scene(area="area", combat="battle")
    context = resolve_context(world.session, world.settings)
    assert context is not None
    assert context.kind is ContextKind.AREA
    assert context.playlist.id == "area"


def test_combat_contexts_dropped_until_combat_starts(world: World) -> None:
    scene = world.scene(area="area", combat="battle")
    hero = world.actor("hero", combat="hero")
    combat = world.combat(hero, scene=scene, started=False)

    assert _winner_playlist(world) == "area"

    combat.started = True
    assert _winner_playlist(world) == "hero"


def test_area_suppression_leaves_silence(world: World) -> None:
    world.scene(area="area")
    world.settings = world.settings.with_changes(area_suppressed=True)
    assert resolve_context(world.session, world.settings) is None


def test_combat_suppression_falls_back_to_area(world: World) -> None:
    scene = world.scene(area="area", combat="battle")
    world.combat(world.actor("hero", combat="hero"), scene=scene)
    world.settings = world.settings.with_changes(combat_suppressed=True)
    assert _winner_playlist(world) == "area"


def test_current_turn_beats_priority(world: World) -> None:
    scene = world.scene()
    declare(scene, "combat", "battle", priority=50)
    hero = world.actor("hero", combat="hero")
    world.combat(hero, scene=scene, turn=0)

    assert _winner_playlist(world) == "hero"


def test_current_turn_matches_token_actor_and_prototype(world: World) -> None:
    scene = world.scene()
    declare(scene, "combat", "battle", priority=50)
    villain = world.actor("villain", prototype="proto")
    villain_token = world.token("vt", villain, linked=True)
    world.combat(villain_token, scene=scene, turn=0)

    assert _winner_playlist(world) == "proto"


def test_higher_priority_wins_among_non_current(world: World) -> None:
    scene = world.scene()
    declare(scene, "combat", "battle", priority=1)
    boss = world.actor("boss")
    declare(boss, "combat", "boss", priority=9)
    world.combat(world.actor("idle"), boss, scene=scene, turn=0)

    assert _winner_playlist(world) == "boss"


def test_source_kind_breaks_priority_ties(world: World) -> None:
    scene = world.scene(combat="battle")
    villain = world.actor("villain")
    world.combat(
        world.actor("idle"),
        world.token("vt", villain, combat="villain"),
        scene=scene,
        turn=0,
    )

    assert _winner_playlist(world) == "villain"

    world.settings = world.settings.with_changes(
        kind_ranking=(SourceKind.SCENE, SourceKind.TOKEN)
    )
    assert _winner_playlist(world) == "battle"


def test_unlisted_kinds_rank_after_listed_ones(world: World) -> None:
    scene = world.scene(combat="battle")
    world.combat(world.actor("idle"), world.actor("hero", combat="hero"), scene=scene)
    assert _winner_playlist(world) == "hero"

    world.settings = world.settings.with_changes(kind_ranking=(SourceKind.SCENE,))
    assert _winner_playlist(world) == "battle"


def test_equal_candidates_keep_collection_order(world: World) -> None:
    scene = world.scene()
    world.combat(
        world.actor("idle"),
        world.actor("hero", combat="hero"),
        world.actor("villain", combat="villain"),
        scene=scene,
    )

    first = [c.playlist.id for c in rank_contexts(world.session, world.settings)]
    second = [c.playlist.id for c in rank_contexts(world.session, world.settings)]

    assert first == ["hero", "villain"]
    assert second == first


def test_last_actor_prefers_most_recent_previous_turn(world: World) -> None:
    scene = world.scene()
    world.combat(
        world.actor("hero", combat="hero"),
        world.actor("villain", combat="villain"),
        world.actor("idle"),
        scene=scene,
        turn=2,
    )
    assert _winner_playlist(world) == "hero"

    world.settings = world.settings.with_changes(silent_mode=SilentMode.LAST_ACTOR)
    assert _winner_playlist(world) == "villain"


def test_last_actor_skips_silent_combatants(world: World) -> None:
    scene = world.scene()
    world.combat(
        world.actor("hero", combat="hero"),
        world.actor("villain", combat="villain"),
        world.actor("quiet"),
        world.actor("idle"),
        scene=scene,
        turn=3,
    )
    world.settings = world.settings.with_changes(silent_mode=SilentMode.LAST_ACTOR)

    assert _winner_playlist(world) == "villain"


def test_last_actor_wraps_around_turn_order(world: World) -> None:
    scene = world.scene()
    world.combat(
        world.actor("idle"),
        world.actor("hero", combat="hero"),
        world.actor("villain", combat="villain"),
        scene=scene,
        turn=0,
    )
    world.settings = world.settings.with_changes(silent_mode=SilentMode.LAST_ACTOR)

    assert _winner_playlist(world) == "villain"


def test_area_silent_mode_prefers_area_music(world: World) -> None:
    scene = world.scene(area="area")
    boss = world.actor("boss")
    declare(boss, "combat", "boss", priority=5)
    world.combat(world.actor("idle"), boss, scene=scene)
    assert _winner_playlist(world) == "boss"

    world.settings = world.settings.with_changes(silent_mode=SilentMode.AREA)
    assert _winner_playlist(world) == "area"


def test_generic_silent_mode_prefers_scene_combat_music(world: World) -> None:
    scene = world.scene(combat="battle")
    boss = world.actor("boss")
    declare(boss, "combat", "boss", priority=5)
    world.combat(world.actor("idle"), boss, scene=scene)
    assert _winner_playlist(world) == "boss"

    world.settings = world.settings.with_changes(silent_mode=SilentMode.GENERIC)
    assert _winner_playlist(world) == "battle"


def test_silent_mode_never_overrides_current_turn(world: World) -> None:
    scene = world.scene(area="area")
    world.combat(world.actor("hero", combat="hero"), scene=scene, turn=0)
    world.settings = world.settings.with_changes(silent_mode=SilentMode.AREA)

    assert _winner_playlist(world) == "hero"
