"""Timeline - Replay call times through a debouncer or throttler.

Prints when the wrapped operation would fire and which call's arguments
it would receive. Runs on a virtual clock, so output is exact and instant.

    python -m fnkit.tools.timeline --mode debounce --wait 100 --calls 0,10,20
"""

import argparse
import logging
import sys
from dataclasses import dataclass

from fnkit.core.throttle import Debouncer, Throttler
from fnkit.core.timers import ManualScheduler

logger = logging.getLogger("fnkit")


@dataclass
class Firing:
    """One invocation of the wrapped operation."""

    time: float
    call_index: int
    call_time: float


def setup_logging(debug: bool = False) -> None:
    """Configure logging for the tool."""
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def simulate(
    calls: list[float],
    mode: str = "debounce",
    wait_ms: float = 100.0,
    leading: bool | None = None,
    trailing: bool | None = None,
    max_wait_ms: float | None = None,
    until: float | None = None,
) -> list[Firing]:
    """Replay calls at the given times and record invocations.

    Args:
        calls: Call times in milliseconds (sorted ascending).
        mode: "debounce" or "throttle".
        wait_ms: Wait/window length.
        leading: Leading edge override.
        trailing: Trailing edge override.
        max_wait_ms: Debounce ceiling.
        until: Stop the clock here; default drains all timers.

    Returns:
        Invocations in firing order.
    """
    scheduler = ManualScheduler()
    firings: list[Firing] = []

    def record(index: int, call_time: float) -> None:
        firings.append(Firing(scheduler.now(), index, call_time))

    if mode == "debounce":
        controller = Debouncer(
            record,
            wait_ms,
            leading=leading,
            trailing=trailing,
            max_wait_ms=max_wait_ms,
            scheduler=scheduler,
        )
    elif mode == "throttle":
        if max_wait_ms is not None:
            raise ValueError("max_wait applies to debounce only")
        controller = Throttler(
            record, wait_ms, leading=leading, trailing=trailing, scheduler=scheduler
        )
    else:
        raise ValueError(f"Unknown mode: {mode}")

    for index, at in enumerate(sorted(calls)):
        scheduler.advance_to(at)
        controller(index, at)

    if until is None:
        scheduler.run_all()
    else:
        scheduler.advance_to(until)
    return firings


def _parse_calls(text: str) -> list[float]:
    try:
        return [float(part) for part in text.split(",") if part.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid call list: {text}")


def main(argv: list[str] | None = None) -> int:
    """Run the timeline tool."""
    parser = argparse.ArgumentParser(description="fnkit timeline simulator")
    parser.add_argument(
        "--mode",
        "-m",
        choices=["debounce", "throttle"],
        default="debounce",
        help="Controller to simulate",
    )
    parser.add_argument("--wait", "-w", type=float, default=100.0, help="Wait in ms")
    parser.add_argument("--max-wait", type=float, default=None, help="Debounce ceiling in ms")
    parser.add_argument(
        "--calls",
        "-c",
        type=_parse_calls,
        required=True,
        help="Comma-separated call times in ms",
    )
    parser.add_argument("--leading", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--trailing", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--until", type=float, default=None, help="Stop clock at ms")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)
    setup_logging(args.debug)

    try:
        firings = simulate(
            args.calls,
            mode=args.mode,
            wait_ms=args.wait,
            leading=args.leading,
            trailing=args.trailing,
            max_wait_ms=args.max_wait,
            until=args.until,
        )
    except ValueError as e:
        logger.error("%s", e)
        return 2

    print(f"{args.mode} wait={args.wait:g}ms, {len(args.calls)} call(s)")
    for firing in firings:
        print(
            f"  t={firing.time:>8g}  call #{firing.call_index} (t={firing.call_time:g})"
        )
    print(f"{len(firings)} invocation(s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
