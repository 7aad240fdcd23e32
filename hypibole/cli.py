"""CLI client for the hypibole HTTP service."""

from __future__ import annotations

import argparse
import json
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Dict, List, Optional

DEFAULT_URL = "http://127.0.0.1:8080/"


def send_request(url: str, params: Dict[str, str], timeout: float = 5.0) -> Dict[str, Any]:
    """Issue one board operation and return the decoded JSON body."""
    target = url.rstrip("/") + "/?" + urllib.parse.urlencode(params)
    try:
        with urllib.request.urlopen(target, timeout=timeout) as response:
            body = response.read()
    except urllib.error.HTTPError as exc:
        # Failures still carry a JSON body.
        body = exc.read()
    if not body:
        raise RuntimeError("Empty response from hypibole")
    return json.loads(body.decode("utf-8"))


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments for board requests."""
    parser = argparse.ArgumentParser(description="hypibole client")
    parser.add_argument("--url", default=DEFAULT_URL, help="Service base URL")
    parser.add_argument("--timeout", type=float, default=5.0, help="Request timeout in seconds")

    sub = parser.add_subparsers(dest="cmd", required=True)

    get_cmd = sub.add_parser("get", help="Read a pin level")
    get_cmd.add_argument("pin", help="Pin identifier")

    set_cmd = sub.add_parser("set", help="Drive a pin level")
    set_cmd.add_argument("pin", help="Pin identifier")
    set_cmd.add_argument("level", choices=["high", "low"], help="Level to drive")

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Run the CLI and print the JSON response."""
    args = parse_args(argv)
    params = {"pin": args.pin, "op": args.cmd}
    if args.cmd == "set":
        params["level"] = args.level

    response = send_request(args.url, params, timeout=args.timeout)
    print(json.dumps(response, indent=2))
    return 1 if "error" in response else 0


if __name__ == "__main__":
    raise SystemExit(main())
