from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict

from .constants import DEFAULT_HOST, DEFAULT_OUTPUT, DEFAULT_PORT, DEFAULT_TIMEOUT_MS
from .export import packet_to_dict, write_packets
from .mock import MockExchange, sample_packets
from .net import TransportError
from .packet import SequenceRangeError
from .session import SessionClient, SessionState, run_session
from .store import PacketStore


def _client(args: argparse.Namespace) -> SessionClient:
    return SessionClient(args.host, args.port, timeout_ms=args.timeout_ms)


def cmd_fetch(args: argparse.Namespace) -> int:
    store = PacketStore()
    metrics = run_session(_client(args), store)
    # export whatever was collected, even after a failed stream
    write_packets(store.sorted(), args.out)

    payload = {
        "state": metrics.state.value,
        "packets": len(store),
        "high_water_mark": store.high_water_mark,
        "reconnects": metrics.reconnects,
        "gaps": metrics.gaps_found,
        "recovered": metrics.gaps_recovered,
        "skipped": metrics.gaps_skipped,
        "unrequestable": asdict(metrics.gaps_unrequestable) if metrics.gaps_unrequestable else None,
        "seconds": metrics.duration_s,
        "out": args.out,
    }
    print(json.dumps(payload, indent=2) if args.json else payload)
    return 0 if metrics.state == SessionState.DONE else 1


def cmd_resend(args: argparse.Namespace) -> int:
    try:
        packet = _client(args).request_one(args.sequence)
    except (SequenceRangeError, TransportError) as exc:
        logging.error("resend of %d failed: %s", args.sequence, exc)
        return 1
    if packet is None:
        logging.error("server returned nothing for sequence %d", args.sequence)
        return 1
    print(json.dumps(packet_to_dict(packet), indent=2))
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    exchange = MockExchange(
        sample_packets(args.count),
        omit=args.omit,
        chunk_size=args.chunk_size,
        drop_after=args.drop_after,
        host=args.host,
        port=args.port,
    )
    try:
        exchange.serve_forever()
    except KeyboardInterrupt:
        logging.info("mock exchange stopped")
    finally:
        exchange.sock.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="abx-client", description="ABX exchange market-data client.")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_common(x: argparse.ArgumentParser) -> None:
        x.add_argument("--host", default=DEFAULT_HOST)
        x.add_argument("--port", type=int, default=DEFAULT_PORT)
        x.add_argument("--timeout-ms", type=int, default=DEFAULT_TIMEOUT_MS, help="read/connect deadline, 0 blocks")

    fetch = sub.add_parser("fetch", help="stream all packets, backfill gaps, write JSON")
    add_common(fetch)
    fetch.add_argument("--out", default=DEFAULT_OUTPUT)
    fetch.add_argument("--json", action="store_true")
    fetch.set_defaults(func=cmd_fetch)

    resend = sub.add_parser("resend", help="request a single packet by sequence number")
    add_common(resend)
    resend.add_argument("sequence", type=int)
    resend.set_defaults(func=cmd_resend)

    serve = sub.add_parser("serve", help="run a local mock exchange")
    add_common(serve)
    serve.add_argument("--count", type=int, default=14)
    serve.add_argument("--omit", type=int, nargs="*", default=[], help="sequences left out of the stream")
    serve.add_argument("--chunk-size", type=int, default=0, help="split the stream into writes of this size")
    serve.add_argument("--drop-after", type=int, default=None, help="reset the first stream after N packets")
    serve.set_defaults(func=cmd_serve)

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
