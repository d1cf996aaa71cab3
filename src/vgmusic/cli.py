"""Command-line interface for vgmusic.

Loads a session snapshot, runs one reconciliation pass as the local client and
reports which context won and which transport commands were issued.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from . import __version__
from .events import ApplicationReady
from .logging_utils import setup_logging
from .paths import log_dir, settings_path
from .runtime_config import resolve_log_level
from .services.audio_backend import AudioSubsystem, describe_track
from .services.dispatcher import SessionEventDispatcher
from .services.fake_audio import FakeAudioSubsystem
from .services.flag_store import MemoryFlagStore
from .services.music_controller import MusicController
from .services.resolver import rank_contexts
from .services.vlc_audio import VLCAudioSubsystem
from .session_store import SessionFormatError, TrackFactory, TrackSpec, load_session
from .settings_store import MusicSettings, load_settings_with_notice
from .utils.time_format import format_offset


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vgmusic",
        description="Pick and play the background track for a tabletop session.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "--session", required=True, help="Path to a JSON session snapshot"
    )
    parser.add_argument(
        "--settings", help="Path to a JSON settings file (default: per-user config)"
    )
    parser.add_argument(
        "--backend",
        choices=("fake", "vlc"),
        default="fake",
        help="Audio backend to drive (fake records commands, vlc plays audio).",
    )
    parser.add_argument(
        "--explain",
        action="store_true",
        help="Print every surviving candidate in rank order",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument(
        "--quiet", action="store_true", help="Only show warnings and errors"
    )
    parser.add_argument("--log-file", help="Write logs to a file path")
    return parser


def _build_audio(name: str) -> tuple[AudioSubsystem, TrackFactory]:
    if name == "vlc":
        vlc_audio = VLCAudioSubsystem()

        def vlc_track(spec: TrackSpec):
            return vlc_audio.create_track(
                spec.track_id,
                spec.playlist_id,
                path=spec.path,
                name=spec.name,
                volume=spec.volume,
                fade_duration_ms=spec.fade_duration_ms,
            )

        return vlc_audio, vlc_track

    fake_audio = FakeAudioSubsystem(unlocked=True)

    def fake_track(spec: TrackSpec):
        return fake_audio.create_track(
            spec.track_id,
            spec.playlist_id,
            name=spec.name,
            volume=spec.volume,
            fade_duration_ms=spec.fade_duration_ms,
            duration=spec.duration,
        )

    return fake_audio, fake_track


async def run_session(args: argparse.Namespace, settings: MusicSettings) -> int:
    audio, track_factory = _build_audio(args.backend)
    session = load_session(Path(args.session), track_factory)
    flag_store = MemoryFlagStore()
    controller = MusicController(
        session=session,
        audio=audio,
        flag_store=flag_store,
        settings_provider=lambda: settings,
    )
    if not controller.is_leader():
        print(f"User '{session.user_id}' is not the leader; nothing to play.")
        return 0

    if args.explain:
        for rank, context in enumerate(rank_contexts(session, settings), start=1):
            print(f"{rank:>2}. {context.describe()} -> {describe_track(context.track)}")

    dispatcher = SessionEventDispatcher(controller, flag_store, ready_delay_s=0.0)
    await dispatcher.dispatch(ApplicationReady())
    await dispatcher.wait_ready()
    context = controller.current_context
    if context is None:
        print("Winner: <silence>")
    else:
        track = context.track
        offset = controller.resume_offset(context.scope, track) if track else 0.0
        print(f"Winner: {context.describe()}")
        print(f"Track:  {describe_track(context.track)} at {format_offset(offset)}")

    if isinstance(audio, FakeAudioSubsystem):
        for command in audio.commands:
            print(f"  {command.playlist_id}/{command.track_id} {command.changes}")
        return 0

    print("Playing; press Ctrl+C to stop.")
    try:
        await asyncio.Event().wait()
    finally:
        await controller.play_context(None)
        await controller.wait_idle()
        if isinstance(audio, VLCAudioSubsystem):
            await audio.shutdown()
    return 0


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    logger = logging.getLogger(__name__)
    try:
        level = resolve_log_level(verbose=args.verbose, quiet=args.quiet)
        setup_logging(
            log_dir=log_dir(),
            level=level,
            log_file=Path(args.log_file) if args.log_file else None,
        )
        settings_file = Path(args.settings) if args.settings else settings_path()
        settings, notice = load_settings_with_notice(settings_file)
        if notice:
            print(notice, file=sys.stderr)
        logger.info("Starting vgmusic CLI with %s backend", args.backend)
        return asyncio.run(run_session(args, settings))
    except SessionFormatError as exc:
        logger.error("Invalid session snapshot: %s", exc)
        print(f"Invalid session snapshot: {exc}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 0
    except Exception as exc:  # pragma: no cover - top-level safety net
        logger.exception("Unhandled error: %s", exc)
        print("Unexpected error. Re-run with --verbose for details.", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
