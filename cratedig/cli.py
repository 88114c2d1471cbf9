"""
Command line entry point for cratedig.

Parses flags, merges them over the config file, opens the catalog and
resolves the user and sample root before handing over to the terminal
loop. ``-watch`` tails the log file instead.
"""
import argparse
import os
import sys
import time
from collections import deque
from pathlib import Path
from typing import List, Optional, Sequence, TextIO

from . import __description__, __version__
from .audio import Codec, OutputFormat, detect_available_decoders
from .catalog import Catalog
from .config import ConfigManager, expand_path, load_config
from .controller import Controller
from .logging_config import (
    get_logger,
    setup_logging,
    CatalogError,
    ConfigurationError,
    FilesystemError,
)
from .navigation import NavigationState
from .preview import PreviewEngine
from .state import Session, UserProfile
from .windows import WindowName

logger = get_logger('cli')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cratedig", description=__description__)
    parser.add_argument("-data", default=None, help="Local data storage path (default ~/.cratedig)")
    parser.add_argument("-db", default=None, help="Database file name (default cratedig)")
    parser.add_argument("-log", default=None, help="Log file name (default logfile)")
    parser.add_argument("-root", default=None, help="Root samples directory")
    parser.add_argument("-user", default=None, help="User name to launch with")
    parser.add_argument("-watch", action="store_true", help="Tail the log file instead of starting a session")
    parser.add_argument("--version", action="version", version=f"cratedig {__version__}")
    return parser


# =============================================================================
# Log watching
# =============================================================================
def tail_lines(path: Path, count: int) -> List[str]:
    """Return the last ``count`` lines of a text file."""
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return [line.rstrip("\n") for line in deque(f, maxlen=count)]


def watch_log(path: Path, count: int = 10, interval: float = 1.0,
              iterations: Optional[int] = None, out: TextIO = sys.stdout) -> int:
    """Redraw the tail of the log file every ``interval`` seconds.

    Returns:
        Exit code: 0 when stopped, 1 if the log cannot be read
    """
    done = 0
    try:
        while iterations is None or done < iterations:
            try:
                lines = tail_lines(path, count)
            except OSError as e:
                print(f"Error: cannot read log file {path}: {e.strerror or e}", file=sys.stderr)
                return 1
            out.write("\033[H\033[2J")
            for line in lines:
                out.write(line + "\n")
            out.flush()
            done += 1
            if iterations is None or done < iterations:
                time.sleep(interval)
    except KeyboardInterrupt:
        pass
    return 0


# =============================================================================
# Bootstrap
# =============================================================================
def resolve_user(catalog: Catalog, name: str) -> Optional[UserProfile]:
    """The named user (created on first use), else the first known user."""
    if name:
        return catalog.get_or_create_user(name)
    users = catalog.list_users()
    return users[0] if users else None


def resolve_root(catalog: Catalog, user: Optional[UserProfile], configured: str) -> Optional[str]:
    """Pick the sample root for this run.

    A configured root overrides the stored one for this run only, and is
    stored when the user has none yet.

    Raises:
        ConfigurationError: If the chosen root is not a directory
    """
    configured = os.path.abspath(expand_path(configured)) if configured else ""
    if user is None:
        root = configured or None
    elif configured and not user.root:
        catalog.update_root(user.id, configured)
        user.root = configured
        root = configured
    elif configured and configured != user.root:
        logger.info(f"Launched with temporary root {configured}")
        user.root = configured
        root = configured
    else:
        root = user.root or None

    if root and not os.path.isdir(root):
        raise ConfigurationError(f"Root directory does not exist: {root}")
    return root


def bootstrap(manager: ConfigManager) -> Controller:
    """Build the session, wired to the catalog and the preview engine.

    Raises:
        ConfigurationError: If the catalog cannot be opened or the root is invalid
    """
    config = manager.config
    try:
        catalog = Catalog(manager.get_db_path())
        user = resolve_user(catalog, config.user)
        root = resolve_root(catalog, user, config.root)
    except CatalogError as e:
        raise ConfigurationError(str(e))

    store = NavigationState(
        root or os.path.expanduser("~"),
        tag_lookup=catalog.tags_for_directory,
        sidecar_extensions=config.sidecar_extensions,
    )
    engine = PreviewEngine(
        Codec(), OutputFormat(config.sample_rate, config.channels, config.bit_depth)
    )
    detect_available_decoders()

    session = Session(store, user)
    controller = Controller(session, catalog, engine, jump_size=config.jump_size)
    if user is None:
        controller.set_window(WindowName.ENTER_USERNAME)
    elif root is None:
        controller.set_window(WindowName.ENTER_ROOT)
    else:
        try:
            store.refresh()
        except FilesystemError as e:
            raise ConfigurationError(str(e))
    logger.info(f"Session ready for {user.name if user else 'new user'} at {root or '(no root)'}")
    return controller


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        manager = load_config(args.data)
        manager.apply_overrides(db_file=args.db, log_file=args.log, root=args.root, user=args.user)
        manager.create_data_directory()
        manager.require_valid()
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    log_path = manager.get_log_path()
    if args.watch:
        return watch_log(log_path)

    setup_logging(manager.config.log_level, log_file=log_path, console=False)
    if manager.created:
        print(f"\n  Config file created at: {manager.config_path}")

    if not sys.stdin.isatty():
        print("Error: Must run in interactive terminal", file=sys.stderr)
        return 1

    try:
        controller = bootstrap(manager)
    except ConfigurationError as e:
        logger.error(f"Startup failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    # Imported late so the non-interactive paths never touch termios
    from .app import App

    App(controller, redraw_interval=manager.config.redraw_interval).run()
    return 0
