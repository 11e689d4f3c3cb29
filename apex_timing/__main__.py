"""
Command line entry point.

    python -m apex_timing replay SESSION.vbo --track silverstone
    python -m apex_timing tracks
    python -m apex_timing sessions [--delete ID | --clear]
"""

import argparse
import logging
import sys

from apex_timing.config import APP_VERSION, SESSION_ARCHIVE_DB
from apex_timing.core.session_recorder import SessionRecorder
from apex_timing.data.track_catalog import find_track_by_name, get_track, list_tracks
from apex_timing.utils.conversions import format_elapsed, format_speed
from apex_timing.utils.session_archive import SessionArchive
from apex_timing.utils.vbo_parser import VBOParser


def replay(args) -> int:
    """Run a VBO log through the recorder and print the laps."""
    try:
        parser = VBOParser(args.file, negate_longitude=args.negate_lon)
    except OSError as e:
        print(f"Cannot read {args.file}: {e}", file=sys.stderr)
        return 1

    recorder = SessionRecorder(persist=False)
    results = []
    if args.radius is not None or args.min_lap_time is not None:
        config = recorder.detector.config
        results.append(recorder.configure_detector(
            args.radius if args.radius is not None else config.radius,
            args.min_lap_time if args.min_lap_time is not None else config.min_lap_time,
        ))
    if args.track:
        track = get_track(args.track) or find_track_by_name(args.track)
        results.append(recorder.set_gate_from_catalog(track.id if track else args.track))
    elif args.gate:
        results.append(recorder.set_gate(args.gate[0], args.gate[1]))
    if args.auto:
        results.append(recorder.configure_auto_mode(True))

    for result in results:
        if not result.accepted:
            print(f"Setup refused: {result.reason}", file=sys.stderr)
            return 1

    fixes = parser.stream_fixes()
    armed = args.auto
    for fix in fixes:
        if not armed:
            recorder.arm(now=fix.timestamp)
            armed = True
        outcome = recorder.on_fix(fix)
        if outcome.lap is not None:
            lap = outcome.lap
            print(f"Lap {lap.number:3d}  {format_elapsed(lap.time)}  "
                  f"max {format_speed(lap.max_speed, args.unit)} {args.unit}")

    snapshot = recorder.snapshot()
    best = snapshot.best_lap
    print(f"{len(snapshot.laps)} laps, {len(snapshot.path)} fixes recorded")
    if best is not None:
        print(f"Best lap: {best.number} {format_elapsed(best.time)}")

    if args.archive:
        session = recorder.archive_session(SessionArchive(args.db))
        if session is None:
            print("Archive failed", file=sys.stderr)
            return 1
        print(f"Archived as {session.session_id}")
    return 0


def tracks(args) -> int:
    """List the circuit catalog."""
    for track in list_tracks():
        print(f"{track.id:16s} {track.name} ({track.location}) "
              f"{track.lat:.6f}, {track.lon:.6f}")
    return 0


def sessions(args) -> int:
    """List, delete or clear archived sessions."""
    archive = SessionArchive(args.db)

    if args.clear:
        print(f"Deleted {archive.clear_all()} sessions")
        return 0

    if args.delete:
        if not archive.delete(args.delete):
            print(f"No session {args.delete}", file=sys.stderr)
            return 1
        print(f"Deleted {args.delete}")
        return 0

    for session in archive.list_sessions():
        best = session.best_lap
        best_text = format_elapsed(best.time) if best else "--:--.--"
        print(f"{session.session_id}  {session.created_at}  "
              f"{len(session.laps):3d} laps  best {best_text}  "
              f"duration {format_elapsed(session.duration_ms)}")
    return 0


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="apex_timing",
        description="Apex lap timer - GPS lap timing for track days"
    )
    parser.add_argument("--version", action="version", version=APP_VERSION)
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show detector and recorder logging",
    )
    parser.add_argument(
        "--db",
        default=SESSION_ARCHIVE_DB,
        help="Session archive database (default: %(default)s)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    replay_parser = subparsers.add_parser("replay", help="Replay a RaceLogic VBO log")
    replay_parser.add_argument("file", help="Path to .vbo file")
    gate = replay_parser.add_mutually_exclusive_group()
    gate.add_argument("--track", help="Catalog circuit id or name for the start/finish gate")
    gate.add_argument("--gate", nargs=2, type=float, metavar=("LAT", "LON"),
                      help="Start/finish gate coordinate")
    replay_parser.add_argument("--radius", type=float, help="Gate radius in metres")
    replay_parser.add_argument("--min-lap-time", type=float, help="Minimum lap time in seconds")
    replay_parser.add_argument("--auto", action="store_true",
                               help="Start and stop recording from speed instead of at the first fix")
    replay_parser.add_argument("--unit", choices=("kph", "mph"), default="kph")
    replay_parser.add_argument("--negate-lon", action="store_true", default=None,
                               help="Treat log longitudes as west")
    replay_parser.add_argument("--archive", action="store_true",
                               help="Archive the replayed session")
    replay_parser.set_defaults(func=replay)

    tracks_parser = subparsers.add_parser("tracks", help="List catalog circuits")
    tracks_parser.set_defaults(func=tracks)

    sessions_parser = subparsers.add_parser("sessions", help="List archived sessions")
    action = sessions_parser.add_mutually_exclusive_group()
    action.add_argument("--delete", metavar="ID", help="Delete a session")
    action.add_argument("--clear", action="store_true", help="Delete every archived session")
    sessions_parser.set_defaults(func=sessions)

    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
