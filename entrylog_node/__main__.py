# entrylog_node/__main__.py
"""
Entry point for running the EntryLog node as a module:

    python -m entrylog_node serve [--org org1] [--host 0.0.0.0] [--port 3000]
    python -m entrylog_node set   [--facility Facility1] [--person 1] [--org org1]
    python -m entrylog_node get   EntryLog4 [--org org3]

Common flags: --config path/to/entrylog_config.yaml
`set` and `get` exit 0 on success and 1 on any failure.
"""

from __future__ import annotations

import argparse
import json
import os
import sys

from .config import get_bind_host, get_bind_port, get_org, load_config
from .entrylog_api import build_allocator, configure_logging
from .errors import EntryLogError
from .fabric.pool import GatewayPool
from .runtime.entry_logs import PEOPLE, person_id
from .runtime.entry_service import EntryLogService


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        prog="entrylog-node",
        description="EntryLog node: HTTP gateway and scripts for the entryLog chaincode",
    )
    p.add_argument(
        "--config",
        default=os.environ.get("ENTRYLOG_CONFIG"),
        help="Path to entrylog_config.yaml (default: ./entrylog_config.yaml)",
    )
    p.add_argument("--org", default=None, help="Organization to act as (org1, org2, org3)")
    sub = p.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=None, help="Bind address")
    serve.add_argument("--port", type=int, default=None, help="Port")

    put = sub.add_parser("set", help="Submit one entry log")
    put.add_argument("--facility", default="Facility1")
    put.add_argument(
        "--person",
        type=int,
        default=1,
        choices=range(len(PEOPLE)),
        help="Index into the demo people fixture",
    )
    put.add_argument("--entry-time", default=None, help="Override the entry time")

    get = sub.add_parser("get", help="Read one entry log with its private details")
    get.add_argument("entry_log_id")
    return p.parse_args(argv)


def _service(cfg) -> EntryLogService:
    return EntryLogService(GatewayPool(cfg), build_allocator(cfg))


def cmd_set(cfg, args) -> int:
    service = _service(cfg)
    try:
        result = service.record_entry(
            get_org(cfg),
            args.facility,
            person_id(args.person),
            PEOPLE[args.person],
            args.entry_time,
        )
    except (EntryLogError, ValueError) as e:
        print(f"Failed to submit transaction: {e}", file=sys.stderr)
        return 1
    finally:
        service.pool.close()
    print("Transaction has been submitted")
    print(json.dumps(result, ensure_ascii=False))
    return 0


def cmd_get(cfg, args) -> int:
    service = _service(cfg)
    try:
        record = service.get_entry_log(get_org(cfg), args.entry_log_id)
    except (EntryLogError, ValueError) as e:
        print(f"Failed to evaluate transaction: {e}", file=sys.stderr)
        return 1
    finally:
        service.pool.close()
    print(f"Transaction has been evaluated, result is: {json.dumps(record, ensure_ascii=False)}")
    return 0


def cmd_serve(cfg, args) -> int:
    import uvicorn

    from .entrylog_api import create_app

    app = create_app(cfg)
    uvicorn.run(
        app,
        host=args.host or get_bind_host(cfg),
        port=args.port or get_bind_port(cfg),
    )
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    cfg = load_config(os.getcwd(), args.config)
    if args.org:
        cfg["server"]["org"] = args.org
    configure_logging(cfg)

    commands = {"serve": cmd_serve, "set": cmd_set, "get": cmd_get}
    return commands[args.command](cfg, args)


if __name__ == "__main__":
    raise SystemExit(main())
