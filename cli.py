from __future__ import annotations

import argparse
import json
import sys

import requests


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Gray steering CLI")
    p.add_argument("--api", default="http://localhost:8000", help="API base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("health", help="Check the gateway is up")

    s_dec = sub.add_parser("decide", help="Evaluate a gray decision for an upstream")
    s_dec.add_argument("--upstream-id", required=True)
    s_dec.add_argument("--gray-name", default="", help="Value of the gray-name header")

    args = p.parse_args(argv)

    base = args.api.rstrip("/")

    if args.cmd == "health":
        r = requests.get(f"{base}/health", timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "decide":
        payload = {"upstream_id": args.upstream_id, "gray_name": args.gray_name}
        r = requests.post(f"{base}/gray/decide", json=payload, timeout=30)
        _print(r.json())
        return 0 if r.ok else 1

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
