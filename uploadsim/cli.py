"""Command line interface for uploadsim package."""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import random
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from rich.logging import RichHandler

from . import __version__
from .cli_progress import UploadProgressDisplay, render_configuration_summary
from .models import FileDescriptor, SimulatorConfig
from .services import TaskRegistry, TransferSimulator

logger = logging.getLogger(__name__)


class CLIError(RuntimeError):
    """Raised when CLI validation/execution fails."""


def _setup_logging(debug: bool, silent: bool, log_level: Optional[str]) -> str:
    """
    Install a RichHandler on the root logger.

    Logging stays off unless --debug, --log-level or LOG_LEVEL asks for it.
    Returns the effective level name, or "silent".
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
    logging.disable(logging.NOTSET)

    requested = "DEBUG" if debug else (log_level or os.getenv("LOG_LEVEL"))
    if silent or not requested:
        logging.disable(logging.CRITICAL)
        root_logger.setLevel(logging.CRITICAL + 1)
        return "silent"

    level = getattr(logging, requested.upper(), logging.INFO)
    handler = RichHandler(rich_tracebacks=True, markup=True, show_time=False, show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    return logging.getLevelName(level)


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_env_file(path: Path) -> None:
    """Export KEY=VALUE lines from path; variables already set win."""
    if not path.is_file():
        raise CLIError(f"env file not found: {path}")
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        raise CLIError(f"could not read env file {path}: {exc}") from exc

    for line in lines:
        line = line.strip()
        if line.startswith("export "):
            line = line[len("export "):]
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key or key.startswith("#"):
            continue
        os.environ.setdefault(key, _strip_optional_quotes(value.strip()))


def _build_config(args: argparse.Namespace) -> SimulatorConfig:
    """Environment first, then explicit flags."""
    try:
        base = SimulatorConfig.from_env()
        return SimulatorConfig(
            total_steps=args.steps if args.steps is not None else base.total_steps,
            tick_interval=(
                args.tick_ms / 1000 if args.tick_ms is not None else base.tick_interval
            ),
            failure_rate=(
                args.failure_rate if args.failure_rate is not None else base.failure_rate
            ),
            fail_after_step=(
                args.fail_after if args.fail_after is not None else base.fail_after_step
            ),
        )
    except ValueError as exc:
        raise CLIError(f"invalid simulator settings: {exc}") from exc


def _collect_files(paths: Sequence[Path], demo: int, rng: random.Random) -> List[FileDescriptor]:
    files = []
    for raw in paths:
        path = Path(raw).expanduser()
        if not path.exists():
            raise CLIError(f"file does not exist: {path}")
        if not path.is_file():
            raise CLIError(f"not a file: {path}")
        files.append(FileDescriptor.from_path(path))

    for idx in range(1, demo + 1):
        files.append(FileDescriptor(name=f"demo-{idx:03d}.bin", size=rng.randint(1024, 64 * 1024 * 1024)))
    return files


async def _run_uploads(
    files: List[FileDescriptor],
    config: SimulatorConfig,
    retries: int,
    seed: Optional[int],
) -> int:
    simulator = TransferSimulator(config, rng=random.Random(seed))
    display = UploadProgressDisplay()

    async with TaskRegistry(simulator) as registry:
        subscription = registry.subscribe()

        async def render() -> None:
            async for snapshot in subscription:
                display.on_snapshot(snapshot)

        renderer = asyncio.create_task(render())
        try:
            registry.add_files(files)
            await registry.wait_idle()

            rounds = 0
            while registry.summary().failed and rounds < retries:
                rounds += 1
                retried = registry.retry_failed()
                logger.info("Retry round %d: %d task(s)", rounds, len(retried))
                await registry.wait_idle()
        finally:
            subscription.close()
            await renderer
            display.on_finish(registry.tasks)

        return 0 if registry.summary().all_success else 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="upload-sim",
        description="Simulate concurrent file uploads with live progress.",
    )
    parser.add_argument("files", nargs="*", type=Path, help="Files to 'upload' (only name and size are used)")
    parser.add_argument(
        "-n",
        "--demo",
        type=int,
        default=0,
        help="Add N synthetic files",
    )
    parser.add_argument(
        "-r",
        "--retries",
        type=int,
        default=0,
        help="Retry rounds for failed uploads (default: 0)",
    )
    parser.add_argument("--steps", type=int, default=None, help="Ticks per transfer (env UPLOADSIM_TOTAL_STEPS)")
    parser.add_argument("--tick-ms", type=float, default=None, help="Milliseconds per tick (env UPLOADSIM_TICK_MS)")
    parser.add_argument(
        "--failure-rate",
        type=float,
        default=None,
        help="Probability that a transfer fails (env UPLOADSIM_FAILURE_RATE)",
    )
    parser.add_argument(
        "--fail-after",
        type=int,
        default=None,
        help="Failures happen only after this step (env UPLOADSIM_FAIL_AFTER_STEP)",
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed for repeatable runs")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Only print errors")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"upload-sim {__version__}",
    )
    return parser


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    used_env_file = args.env_file
    if used_env_file is None and Path(".env").is_file():
        used_env_file = Path(".env")
    if used_env_file is not None:
        try:
            _load_env_file(Path(used_env_file))
        except CLIError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    effective_log_mode = _setup_logging(
        debug=args.debug,
        silent=args.silent,
        log_level=args.log_level,
    )

    if not args.files and args.demo <= 0:
        parser.print_help()
        return 0

    try:
        if args.retries < 0:
            raise CLIError("--retries must be >= 0")
        config = _build_config(args)
        files = _collect_files(args.files, args.demo, random.Random(args.seed))
    except CLIError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    render_configuration_summary(
        {
            "Files": len(files),
            "Steps": config.total_steps,
            "Tick": f"{config.tick_interval * 1000:g} ms",
            "Failure Rate": f"{config.failure_rate:.0%}",
            "Fail After Step": config.fail_after_step,
            "Retries": args.retries,
            "Seed": args.seed if args.seed is not None else "-",
            "Env File": str(used_env_file) if used_env_file else "-",
            "Logging": effective_log_mode,
        }
    )

    try:
        return asyncio.run(
            _run_uploads(
                files=files,
                config=config,
                retries=args.retries,
                seed=args.seed,
            )
        )
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return 130


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
