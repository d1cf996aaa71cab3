"""Manual VLC audio smoke test: play a file, then fade it out."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from vgmusic.services.fading import FadeDirection, FadeRegistry  # noqa: E402
from vgmusic.services.vlc_audio import VLCAudioSubsystem  # noqa: E402


async def _run(path: Path, offset: float, play_s: float, fade_ms: int) -> None:
    audio = VLCAudioSubsystem()
    track = audio.create_track(
        "smoke", "smoke", path=str(path), name=path.name, fade_duration_ms=fade_ms
    )
    await track.update(playing=True, paused_time=offset)
    print(f"playing {path.name} from {offset:.1f}s")
    await asyncio.sleep(play_s)
    print(f"position {track.current_time}s of {track.duration}s; fading out")
    fades = FadeRegistry()
    fades.start(track, fade_ms, FadeDirection.OUT)
    await fades.wait_idle()
    print("stopped" if not track.playing else "still playing")
    await audio.shutdown()


def main() -> None:
    parser = argparse.ArgumentParser(description="VLC audio smoke test.")
    parser.add_argument("path", type=Path, help="Path to an audio file.")
    parser.add_argument("--offset", type=float, default=0.0, help="Start offset (s)")
    parser.add_argument("--seconds", type=float, default=5.0, help="Play time (s)")
    parser.add_argument("--fade-ms", type=int, default=2000, help="Fade-out length")
    args = parser.parse_args()
    asyncio.run(_run(args.path, args.offset, args.seconds, args.fade_ms))


if __name__ == "__main__":
    main()
