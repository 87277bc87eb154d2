"""Command-line entry point for badgerds-upgrade.

Usage:
    python -m badgerds_upgrade [REPO] [options]

    Arguments:
        REPO                    Repository root (default: $IPFS_PATH or ~/.ipfs)

    Options:
        --log-level LEVEL       Logging level (default: BADGERDS_UPGRADE_LOG_LEVEL or INFO)
        --no-verify             Skip the post-commit entry count check

Exit codes:
    0  every datastore upgraded (or already current)
    1  the run failed; the repository is untouched or partially upgraded
    2  a swap was interrupted and needs manual recovery (see the message)

All logging goes to stderr.
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from functools import partial
from pathlib import Path

from dotenv import load_dotenv

from badgerds_upgrade import __version__
from badgerds_upgrade.config import UpgradeSettings
from badgerds_upgrade.errors import ManualRecoveryRequired, UpgradeError
from badgerds_upgrade.upgrader import UpgradeReport, Upgrader

logger = logging.getLogger(__name__)


def default_repo_path() -> Path:
    """Repository root from $IPFS_PATH, falling back to ~/.ipfs."""
    env = os.environ.get("IPFS_PATH")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".ipfs"


def setup_logging(log_level: str) -> None:
    """Configure logging to stderr.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="badgerds-upgrade",
        description="Upgrade badger datastores in a repository to the current on-disk format",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "repo",
        nargs="?",
        type=Path,
        default=None,
        help="Repository root (default: $IPFS_PATH or ~/.ipfs)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (from BADGERDS_UPGRADE_LOG_LEVEL)",
    )
    parser.add_argument(
        "--no-verify",
        action="store_true",
        help="Skip re-counting the migrated store before swapping it in",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def setup_signals(upgrader: Upgrader) -> None:
    """Route SIGINT/SIGTERM to the run's cancellation signal."""
    loop = asyncio.get_running_loop()

    def handle_signal(sig: signal.Signals) -> None:
        logger.warning(f"Received signal {sig.name}, cancelling upgrade...")
        upgrader.cancel()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, partial(handle_signal, sig))


async def run_upgrade(upgrader: Upgrader) -> UpgradeReport:
    setup_signals(upgrader)
    return await upgrader.run()


def main(argv: list[str] | None = None) -> int:
    """Run an upgrade and return the process exit code."""
    load_dotenv()
    args = parse_arguments(argv)

    settings = UpgradeSettings()
    if args.no_verify:
        settings = settings.model_copy(update={"verify": False})

    setup_logging(args.log_level or settings.log_level)

    repo = (args.repo or default_repo_path()).expanduser().resolve()
    logger.info(f"Upgrading repository at {repo}")

    upgrader = Upgrader(repo, settings=settings)
    try:
        report = asyncio.run(run_upgrade(upgrader))
    except ManualRecoveryRequired as e:
        logger.critical(str(e))
        return 2
    except UpgradeError as e:
        logger.error(f"Upgrade failed: {e}")
        return 1

    migrated = report.migrated
    logger.info(
        f"Done: {len(migrated)} datastore(s) migrated, "
        f"{len(report.stores) - len(migrated)} already current"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
