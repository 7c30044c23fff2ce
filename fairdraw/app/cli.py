"""
Command-line entry point for fairdraw.

Builds a draw engine (range, list or grid), restores its state from the state
file, runs one command and saves the result.

Examples:
    python -m fairdraw draw --range 1 40
    python -m fairdraw draw --range 1 40 --count 3
    python -m fairdraw draw --grid 3 4 --blacklist 1,1 2,3
    python -m fairdraw stats --list 3 7 11 19
"""

import argparse
import logging
import logging.handlers
import sys
from typing import List, Optional, Tuple

from fairdraw.config import FairDrawConfig, load_config
from fairdraw.draw_logic.balanced_draw import BalancedDraw
from fairdraw.draw_logic.plane import BalancedDrawPlane
from fairdraw.errors import FairDrawError
from fairdraw.state.draw_state_store import DrawStateStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    # Shared options live on every subcommand so they follow the command name
    common = argparse.ArgumentParser(add_help=False)

    universe = common.add_mutually_exclusive_group(required=True)
    universe.add_argument("--range", nargs=2, type=int, metavar=("START", "END"),
                          help="Draw from START..END inclusive")
    universe.add_argument("--list", nargs="+", type=int, metavar="ID",
                          help="Draw from an explicit list of ids")
    universe.add_argument("--grid", nargs=2, type=int, metavar=("ROWS", "COLS"),
                          help="Draw grid positions from a ROWS x COLS grid")

    common.add_argument("--min-pool-size", type=int, help="Minimum candidate pool size")
    common.add_argument("--max-gap", type=int, help="Draw-count spread that triggers outlier exclusion")
    common.add_argument("--boost", type=float, help="Cold-start weight boost")
    common.add_argument("--decay", type=float, help="Per-draw weight decay factor")
    common.add_argument("--state-file", help="Path to the JSON state file")
    common.add_argument("--no-save", action="store_true", help="Do not write the state file")
    common.add_argument("--seed", type=int, help="Seed for the random generator")
    common.add_argument("--blacklist", nargs="+", metavar="ID",
                        help="Replace the blacklist (grid mode: ROW,COL)")
    common.add_argument("--whitelist", nargs="+", metavar="ID",
                        help="Replace the whitelist (grid mode: ROW,COL)")
    common.add_argument("--whitelist-only", action="store_true",
                        help="Only draw whitelisted ids")
    common.add_argument("--log-level", help="Logging level (DEBUG, INFO, ...)")

    parser = argparse.ArgumentParser(
        prog="fairdraw",
        description="Fairness-balanced random draws with persistent history",
    )
    commands = parser.add_subparsers(dest="command", required=True)
    draw_parser = commands.add_parser("draw", parents=[common], help="Draw one or more ids")
    draw_parser.add_argument("--count", "-n", type=int, default=1, help="Number of ids to draw")
    commands.add_parser("stats", parents=[common], help="Show draw counts and probabilities")
    commands.add_parser("reset", parents=[common], help="Reset all draw counts")

    return parser


def apply_overrides(config: FairDrawConfig, args: argparse.Namespace) -> FairDrawConfig:
    """Apply command-line overrides on top of the environment configuration."""
    if args.min_pool_size is not None:
        config.min_pool_size = args.min_pool_size
    if args.max_gap is not None:
        config.max_gap_threshold = args.max_gap
    if args.boost is not None:
        config.cold_start_boost = args.boost
    if args.decay is not None:
        config.decay_factor = args.decay
    if args.state_file:
        config.state_path = args.state_file
    if args.no_save:
        config.auto_save = False
    if args.seed is not None:
        config.seed = args.seed
    if args.log_level:
        config.log_level = args.log_level
    config.validate()
    return config


def setup_logging(config: FairDrawConfig) -> None:
    """Configure console logging, plus a rotation-tolerant file handler if configured."""
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    if config.log_file:
        # WatchedFileHandler reopens the file after external rotation
        handler = logging.handlers.WatchedFileHandler(config.log_file, mode='a')
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter('%(asctime)s [%(levelname)s] %(name)s: %(message)s'))
        logging.getLogger("fairdraw").addHandler(handler)


def parse_position(value: str) -> Tuple[int, int]:
    """Parse "ROW,COL" into a (row, col) tuple."""
    try:
        row, col = value.split(",")
        return int(row), int(col)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid position: {value} (expected ROW,COL)")


def parse_id(value: str) -> int:
    """Parse a single integer id."""
    try:
        return int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid id: {value} (expected an integer)")


def build_drawer(args: argparse.Namespace, config: FairDrawConfig):
    tuning = dict(
        min_pool_size=config.min_pool_size,
        max_gap_threshold=config.max_gap_threshold,
        cold_start_boost=config.cold_start_boost,
        decay_factor=config.decay_factor,
        rng=config.seed,
    )
    if args.grid:
        return BalancedDrawPlane(args.grid[0], args.grid[1], **tuning)
    if args.range:
        return BalancedDraw.from_range(args.range[0], args.range[1], **tuning)
    return BalancedDraw.from_list(args.list, **tuning)


def apply_lists(drawer, args: argparse.Namespace) -> None:
    """Apply --blacklist / --whitelist / --whitelist-only to the restored engine."""
    if isinstance(drawer, BalancedDrawPlane):
        if args.blacklist:
            drawer.set_blacklist_positions([parse_position(p) for p in args.blacklist])
        if args.whitelist:
            drawer.set_whitelist_positions([parse_position(p) for p in args.whitelist])
    else:
        if args.blacklist:
            drawer.set_blacklist([parse_id(n) for n in args.blacklist])
        if args.whitelist:
            drawer.set_whitelist([parse_id(n) for n in args.whitelist])
    if args.whitelist_only:
        drawer.set_whitelist_only_mode(True)


def format_stats(drawer) -> List[str]:
    lines = []
    if isinstance(drawer, BalancedDrawPlane):
        for (row, col), (count, probability, last_round) in sorted(drawer.get_position_statistics().items()):
            lines.append(f"({row}, {col})  draws={count:<4} p={probability:.3f}  last_round={last_round}")
    else:
        probabilities = dict(drawer.get_probabilities())
        for number, count in drawer.get_statistics():
            lines.append(
                f"{number:>6}  draws={count:<4} p={probabilities.get(number, 0.0):.3f}  "
                f"last_round={drawer.get_last_draw_round(number)}"
            )
    lines.append(
        f"total draws: {drawer.total_draws}  round: {drawer.current_round}  "
        f"average: {drawer.get_average_draw_count():.2f}  gap: {drawer.get_max_draw_count_gap()}"
    )
    return lines


def run(args: argparse.Namespace, config: FairDrawConfig) -> int:
    drawer = build_drawer(args, config)
    store = DrawStateStore(config.state_path)
    drawer.load_data(store)
    apply_lists(drawer, args)

    save_store = store if config.auto_save else None

    if args.command == "draw":
        if args.count == 1:
            results = [drawer.draw_position(save_store) if isinstance(drawer, BalancedDrawPlane)
                       else drawer.draw(save_store)]
        elif isinstance(drawer, BalancedDrawPlane):
            results = drawer.draw_multiple_positions(args.count, save_store)
        else:
            results = drawer.draw_multiple(args.count, save_store)
        for result in results:
            print(f"{result[0]},{result[1]}" if isinstance(result, tuple) else result)
        logger.info(f"[CLI] Drew {len(results)} id(s): {drawer.data_id}")
        return EXIT_OK

    if args.command == "reset":
        drawer.reset_draw_counts()
        print(f"Draw counts reset: {drawer.data_id}")
        if save_store is not None:
            drawer.save_data(save_store)
        return EXIT_OK

    # stats is read-only: list options only affect what is shown
    for line in format_stats(drawer):
        print(line)
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the fairdraw command.

    Returns:
        Process exit status (0 on success, 2 on a fairdraw error)
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = apply_overrides(load_config(), args)
    except FairDrawError as e:
        print(f"fairdraw: {e}", file=sys.stderr)
        return EXIT_ERROR

    setup_logging(config)

    try:
        return run(args, config)
    except argparse.ArgumentTypeError as e:
        parser.error(str(e))
    except FairDrawError as e:
        logger.error(f"[CLI] {e}")
        print(f"fairdraw: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
