import argparse
import logging
import os
import sys
from typing import List

from soundscape.core.config import AppConfig, TimelineConfig
from soundscape.core.errors import SoundscapeError
from soundscape.core.models import SampleSource
from soundscape.generator import ProgressionGenerator
from soundscape.persistence import load_timeline, save_timeline
from soundscape.registry import SoundRegistry, load_sound_file
from soundscape.renderer import TimelineRenderer
from soundscape.session import event_label


def _load_samples(items: List[str], registry: SoundRegistry) -> None:
    for item in items:
        source_id, _, path = item.partition("=")
        if not path:
            source_id, path = None, item
        sid = load_sound_file(path, registry, source_id=source_id)
        print(f"Registered sample: {sid}")


def _print_info(path: str, registry: SoundRegistry) -> None:
    timeline = load_timeline(path)
    if timeline is None:
        print(f"No saved composition found at {path}.")
        return
    print("\n=== Composition ===")
    print(f"Events: {len(timeline)}")
    for e in sorted(timeline, key=lambda e: (e.start_time, e.lane)):
        print(f"  [{e.lane + 1}] {e.start_time:6.2f}s +{e.duration:5.2f}s  {event_label(e, registry)}"
              f"  (reverb {e.reverb_amount:.2f}, {e.resize_behavior.value})")
    missing = [e for e in timeline if isinstance(e.source, SampleSource) and e.source.source_id not in registry]
    if missing:
        print(f"Reminder: {len(missing)} sample event(s) need their audio re-added (--sample ID=FILE).")
    print("===================\n")


def _play(path: str, registry: SoundRegistry) -> int:
    from PyQt6.QtCore import QCoreApplication, QTimer
    from soundscape.engine import AudioContext
    from soundscape.transport import PlaybackTransport

    timeline = load_timeline(path)
    if not timeline:
        print("Nothing to play.")
        return 0

    app = QCoreApplication(sys.argv)
    context = AudioContext()
    transport = PlaybackTransport(context, registry.get, TimelineConfig())
    transport.errorOccurred.connect(lambda msg: print(f"Audio error: {msg}"))
    transport.stateChanged.connect(lambda state: app.quit() if state == "stopped" else None)
    QTimer.singleShot(0, lambda: transport.play(timeline))
    code = app.exec()
    context.close()
    return code


def main() -> None:
    parser = argparse.ArgumentParser(description="Harmonic Soundscape - timeline sequencer")
    parser.add_argument("--generate", type=str, metavar="PATH", help="Write a generated chord progression")
    parser.add_argument("--info", type=str, metavar="PATH", help="Summarize a saved composition")
    parser.add_argument("--bounce", type=str, metavar="PATH", help="Render a saved composition offline")
    parser.add_argument("--out", type=str, help="Output file for --bounce (wav, flac or mp3)")
    parser.add_argument("--play", type=str, metavar="PATH", help="Play a saved composition live")
    parser.add_argument("--sample", action="append", default=[], metavar="ID=FILE",
                        help="Register an audio file for sample events (repeatable)")
    parser.add_argument("--verbose", action="store_true", help="Log engine activity")

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING,
                        format="%(asctime)s %(levelname)s %(name)s %(message)s")
    registry = SoundRegistry()

    try:
        _load_samples(args.sample, registry)

        if args.generate:
            song = ProgressionGenerator().generate()
            save_timeline(song, args.generate)
            print(f"Generated {len(song)} chords -> {args.generate}")

        if args.info:
            _print_info(args.info, registry)

        if args.bounce:
            timeline = load_timeline(args.bounce)
            if timeline is None:
                print(f"No saved composition found at {args.bounce}.")
            else:
                AppConfig.ensure_dirs()
                name = os.path.splitext(os.path.basename(args.bounce))[0]
                out = args.out or AppConfig.get_export_path(name)
                TimelineRenderer().bounce(timeline, registry.get, out)
                print(f"SUCCESS: Bounced to {out}")

        if args.play:
            sys.exit(_play(args.play, registry))
    except SoundscapeError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
