"""
Main entrypoint for the kiosk sync worker.

Usage:
    python -m hatchsync                 # run recovery + scheduled sync until Ctrl+C
    python -m hatchsync status          # print status and record counts
    python -m hatchsync sync            # run one explicit sync attempt
    python -m hatchsync enqueue KIND [--owner ID] [--payload JSON]
    python -m hatchsync serve           # HTTP API with the scheduler inside it

Run either the worker or `serve` against a database, not both.
"""
import argparse
import asyncio
import json
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


async def _run_worker() -> None:
    from hatchsync.sync.engine import build_sync_engine

    engine = build_sync_engine()
    engine.start()
    logger.info("Sync worker running. Press Ctrl+C to stop.")
    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, SystemExit, asyncio.CancelledError):
        logger.info("Shutting down...")
    finally:
        engine.shutdown()
        logger.info("Goodbye.")


async def _run_sync_once() -> int:
    from hatchsync.sync.engine import build_sync_engine

    engine = build_sync_engine()
    engine.store.recover_in_flight()
    result = await engine.sync_now()
    print(f"{result.outcome.value}: {result.message or result.error or ''}".rstrip())
    if result.batch_id:
        print(f"batch {result.batch_id} ({result.record_count} records)")
    return 0 if result.success else 1


def _print_status() -> int:
    from hatchsync.sync.engine import build_sync_engine

    engine = build_sync_engine()
    status = engine.get_status()
    stats = engine.get_sync_stats()
    print(json.dumps({"status": status.model_dump(), "stats": stats.model_dump()}, indent=2))
    return 0


def _enqueue(kind: str, owner: str, payload: str) -> int:
    from hatchsync.errors import ValidationError
    from hatchsync.sync.engine import build_sync_engine

    try:
        data = json.loads(payload)
    except ValueError as exc:
        print(f"--payload is not valid JSON: {exc}", file=sys.stderr)
        return 2
    engine = build_sync_engine()
    try:
        record_id = engine.enqueue(owner, kind, data)
    except ValidationError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    print(record_id)
    return 0


def _serve(host: str, port: int) -> int:
    import uvicorn

    uvicorn.run("hatchsync.api.main:app", host=host, port=port)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hatchsync", description="Kiosk event outbox and cloud sync")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("worker", help="run the scheduled sync worker (default)")
    sub.add_parser("status", help="print sync status and record counts")
    sub.add_parser("sync", help="run one explicit sync attempt")

    enqueue = sub.add_parser("enqueue", help="queue one event")
    enqueue.add_argument("kind")
    enqueue.add_argument("--owner", default="system")
    enqueue.add_argument("--payload", default="{}")

    serve = sub.add_parser("serve", help="run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    return parser


def main(argv=None) -> int:
    args = _build_parser().parse_args(argv)
    if args.command == "status":
        return _print_status()
    if args.command == "sync":
        return asyncio.run(_run_sync_once())
    if args.command == "enqueue":
        return _enqueue(args.kind, args.owner, args.payload)
    if args.command == "serve":
        return _serve(args.host, args.port)
    try:
        asyncio.run(_run_worker())
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
