#!/usr/bin/env python3
"""freewrite - timed free-writing sessions with a daily streak."""

import argparse
import os
import sys
import termios
import threading
import tty
import logging
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterator, Optional, TextIO

# Setup logging with XDG state directory
xdg_state_home = os.environ.get('XDG_STATE_HOME', str(Path.home() / '.local' / 'state'))
log_dir = Path(xdg_state_home) / 'freewrite'
log_dir.mkdir(parents=True, exist_ok=True)
log_file = log_dir / 'freewrite.log'

# Configure rotating file handler (5MB max, keep 5 backups)
file_handler = RotatingFileHandler(
    log_file,
    maxBytes=5*1024*1024,  # 5MB
    backupCount=5
)
stream_handler = logging.StreamHandler()
stream_handler.setLevel(logging.WARNING)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        file_handler,
        stream_handler,
    ]
)
log = logging.getLogger('freewrite')

from core.logical_date import InvalidConfiguration  # noqa: E402
from core.session_stats import KeyEvent, KeyEventType  # noqa: E402
from core.sqlite_adapter import SQLiteAdapter  # noqa: E402
from core.storage import Storage, StreakUpdateFailed  # noqa: E402
from core.writing_session import (  # noqa: E402
    InvalidState,
    SessionState,
    WritingSessionController,
)
from utils.config import Config  # noqa: E402


def default_db_path() -> Path:
    xdg_data_home = os.environ.get('XDG_DATA_HOME', str(Path.home() / '.local' / 'share'))
    data_dir = Path(xdg_data_home) / 'freewrite'
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir / 'freewrite.db'


def open_storage(db_path: Path) -> Storage:
    config = Config(db_path)
    adapter = SQLiteAdapter(db_path)
    adapter.initialize()
    return Storage(adapter, settings=config.get_settings())


def format_duration(seconds: float) -> str:
    mins, secs = divmod(int(seconds), 60)
    return f"{mins}:{secs:02d}"


def print_streak(storage: Storage, user_id: str) -> None:
    status = storage.get_streak_status(user_id)
    if status is None:
        print(f"{user_id} has no sessions yet")
        return
    record = status.record
    state = "active" if status.streak_is_active else "broken"
    print(f"streak   {record.current_streak} ({state}), longest {record.longest_streak}")
    print(f"sessions {record.total_sessions} ({record.total_qualifying_sessions} qualifying)")
    print(f"written  {record.total_words_written} words in "
          f"{format_duration(record.total_seconds_written)}")


CTRL_D = "\x04"
ESCAPE = "\x1b"
ARROW_KEYS = {"A": "ArrowUp", "B": "ArrowDown", "C": "ArrowRight", "D": "ArrowLeft"}


def key_event_for_char(char: str) -> Optional[KeyEvent]:
    """Translate one character read from a cbreak terminal into a key event."""
    if char in ("\n", "\r"):
        return KeyEvent.from_key("Enter")
    if char in ("\x7f", "\b"):
        return KeyEvent.from_key("Backspace")
    if char == "\t":
        return KeyEvent.from_key(char)
    # Ctrl+letter arrives as 0x01-0x1a
    if "\x01" <= char <= "\x1a":
        return KeyEvent.from_key(chr(ord(char) + 96), ctrl=True)
    if not char.isprintable():
        return None
    return KeyEvent.from_key(char)


def read_key_events(stream: TextIO) -> Iterator[KeyEvent]:
    """Yield key events one keystroke at a time until EOF or Ctrl-D."""
    while True:
        char = stream.read(1)
        if char == ESCAPE:
            char = stream.read(1)
            if char == "[":
                name = ARROW_KEYS.get(stream.read(1))
                if name:
                    yield KeyEvent.from_key(name)
                continue
        if not char or char == CTRL_D:
            return
        event = key_event_for_char(char)
        if event is not None:
            yield event


def echo_key(event: KeyEvent, out: TextIO) -> None:
    if event.type == KeyEventType.CHAR:
        out.write(event.payload)
    elif event.type == KeyEventType.ENTER:
        out.write("\n")
    elif event.type == KeyEventType.BACKSPACE:
        out.write("\b \b")
    else:
        return
    out.flush()


def feed_keys(
    controller: WritingSessionController,
    stream: TextIO,
    echo: Optional[TextIO] = None,
) -> None:
    """Hand every keystroke from stream to the controller as it arrives.

    Returns on EOF/Ctrl-D or once the session has terminated.
    """
    for event in read_key_events(stream):
        try:
            controller.handle_key(event)
        except InvalidState:
            log.info("Session already ended, further input ignored")
            return
        if echo is not None:
            echo_key(event, echo)


@contextmanager
def cbreak_mode(stream: TextIO):
    """Deliver keystrokes without waiting for Enter while the block runs.

    Streams that are not terminals (pipes, files) are left untouched.
    """
    if not stream.isatty():
        yield False
        return
    fd = stream.fileno()
    saved = termios.tcgetattr(fd)
    try:
        tty.setcbreak(fd)
        yield True
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)


def cmd_write(args: argparse.Namespace, storage: Storage) -> int:
    """Run a session on stdin, one keystroke at a time."""
    finished = threading.Event()
    settings = storage.settings.to_session_config()
    controller = WritingSessionController(config=settings)

    print(f"start typing. the session ends after {settings.inactivity_timeout_sec:g}s "
          f"without input, {settings.qualifying_threshold_sec // 60} minutes qualify.")

    with cbreak_mode(sys.stdin) as interactive:
        def read_input() -> None:
            try:
                feed_keys(controller, sys.stdin, echo=sys.stdout if interactive else None)
            finally:
                finished.set()

        reader = threading.Thread(target=read_input, daemon=True)
        reader.start()

        # EOF or Ctrl-D ends the session explicitly
        while not finished.wait(0.1):
            if controller.state == SessionState.TERMINATED:
                break
        session = controller.end_session()
    if session is None:
        print("nothing written, session discarded")
        return 0

    print(f"\n{session.word_count} words, {session.words_per_minute} wpm, "
          f"{format_duration(session.duration_seconds)} "
          f"({'qualifying' if session.is_qualifying else 'short'}, {session.end_reason.value})")

    try:
        stored = storage.record_completed_session(args.user, session, is_public=not args.private)
    except InvalidConfiguration as e:
        print(f"session not saved: {e}", file=sys.stderr)
        return 1
    except StreakUpdateFailed as e:
        print(f"saved as {e.stored_session.share_id}, but the streak update failed: {e}",
              file=sys.stderr)
        return 1
    if stored is not None:
        print(f"saved as {stored.share_id} for {stored.logical_date}")
    if args.user:
        print_streak(storage, args.user)
    return 0


def cmd_streak(args: argparse.Namespace, storage: Storage) -> int:
    try:
        print_streak(storage, args.user)
    except InvalidConfiguration as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


def cmd_settings(args: argparse.Namespace, storage: Storage) -> int:
    if args.day_boundary is not None or args.timezone is not None:
        try:
            storage.update_user_settings(args.user, args.day_boundary, args.timezone)
        except ValueError as e:
            print(f"invalid settings: {e}", file=sys.stderr)
            return 1
    settings = storage.get_user_settings(args.user)
    print(f"day boundary {settings.day_boundary_hour:02d}:00, timezone {settings.timezone}")
    return 0


def cmd_show(args: argparse.Namespace, storage: Storage) -> int:
    session = storage.get_session_by_share_id(args.share_id)
    if session is None:
        print(f"no public session {args.share_id}", file=sys.stderr)
        return 1
    print(f"{session.logical_date}  {session.word_count} words  "
          f"{format_duration(session.duration_seconds)}  {session.words_per_minute} wpm")
    print()
    print(session.content)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Timed free-writing with a daily streak")
    parser.add_argument("--db", type=Path, default=None, help="Database path")
    subparsers = parser.add_subparsers(dest="command", required=True)

    write = subparsers.add_parser("write", help="Start a writing session")
    write.add_argument("--user", default=None, help="User id (omit to write anonymously)")
    write.add_argument("--private", action="store_true", help="Do not allow lookup by share id")
    write.set_defaults(func=cmd_write)

    streak = subparsers.add_parser("streak", help="Show a user's streak")
    streak.add_argument("--user", required=True)
    streak.set_defaults(func=cmd_streak)

    settings = subparsers.add_parser("settings", help="Show or change a user's logical day")
    settings.add_argument("--user", required=True)
    settings.add_argument("--day-boundary", type=int, default=None,
                          help="Hour (0-23) when the user's day resets")
    settings.add_argument("--timezone", default=None, help="IANA timezone, e.g. Europe/Oslo")
    settings.set_defaults(func=cmd_settings)

    show = subparsers.add_parser("show", help="Show a public session by share id")
    show.add_argument("share_id")
    show.set_defaults(func=cmd_show)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    storage = open_storage(args.db or default_db_path())
    try:
        return args.func(args, storage)
    finally:
        storage.adapter.close()


if __name__ == "__main__":
    sys.exit(main())
