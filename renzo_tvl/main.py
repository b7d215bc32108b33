import argparse
import logging
import sys

from .config.registry import load_registry
from .errors import RenzoTVLError
from .formatting import render_summary
from .runner import build_reader, run_cycle
from .scheduler import DEFAULT_INTERVAL, SnapshotScheduler
from .snapshot import error_payload, to_json


def _block_arg(value: str):
    if value in ("latest", "safe", "finalized"):
        return value
    try:
        return int(value, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"block must be a number or latest/safe/finalized, got {value!r}")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Renzo ezETH TVL breakdown from on-chain state")
    p.add_argument("--registry", default=None, help="YAML registry of contracts/operators (default: bundled renzo.yaml)")
    p.add_argument("--rpc-url", default=None, help="JSON-RPC URL (default: $RENZO_RPC_URL, Alchemy key, registry rpc_url)")
    p.add_argument("--block", type=_block_arg, default="latest", help="Block number or tag to read at")
    p.add_argument("--pin-block", action="store_true", help="Resolve --block (head, safe or finalized) to a number once and read every query at it")
    p.add_argument("--workers", type=int, default=8, help="Concurrent RPC requests")
    p.add_argument("--timeout", type=float, default=None, help="Per-request timeout in seconds")
    p.add_argument("--rate", type=float, default=5, help="Max RPC calls per second")
    p.add_argument("--json", action="store_true", help="Print the snapshot as JSON instead of a summary")
    p.add_argument("--watch", action="store_true", help="Keep refreshing every --interval seconds")
    p.add_argument("--interval", type=float, default=DEFAULT_INTERVAL, help="Refresh interval for --watch")
    p.add_argument("-v", "--verbose", action="count", default=0)
    return p


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose > 1 else logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        registry = load_registry(args.registry)
    except RenzoTVLError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 2

    reader = build_reader(registry, rpc_url=args.rpc_url, timeout=args.timeout,
                          max_workers=args.workers, calls_per_second=args.rate)

    def cycle():
        return run_cycle(registry, reader, block=args.block, pin=args.pin_block)

    def emit(payload):
        print(to_json(payload, indent=2) if args.json else render_summary(payload), flush=True)

    def emit_error(exc):
        if args.json:
            print(to_json(error_payload(exc)), flush=True)
        else:
            print(f"❌ {error_payload(exc)['error']}: {exc}", file=sys.stderr, flush=True)

    if not args.watch:
        try:
            emit(cycle())
        except RenzoTVLError as e:
            emit_error(e)
            return 1
        return 0

    scheduler = SnapshotScheduler(cycle, interval=args.interval, on_snapshot=emit, on_error=emit_error)
    scheduler.start()
    try:
        scheduler.wait()
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop(timeout=args.interval)
    return 0


if __name__ == "__main__":
    sys.exit(main())
