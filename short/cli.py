"""Command-line entry points for the short key server and client.

Usage::

    short-server --http-host 0.0.0.0 --http-port 8081
    short-cli --http-addr localhost:8081 --method create 12345
    short-cli --http-addr localhost:8081 --method lookup gnzLDu
"""

import argparse
import sys
from typing import Optional, Sequence

import httpx
import uvicorn

from short.client import HTTPClient
from short.config import get_settings
from short.errors import ShortError

__all__ = ["server_main", "client_main"]


def build_server_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(prog="short-server", description="Run the short key HTTP service")
    parser.add_argument("--http-host", default=settings.HTTP_HOST, help="HTTP listen host")
    parser.add_argument("--http-port", type=int, default=settings.HTTP_PORT, help="HTTP listen port")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL, help="Log level")
    return parser


def server_main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_server_parser().parse_args(argv)
    uvicorn.run(
        "short.main:app",
        host=args.http_host,
        port=args.http_port,
        log_level=args.log_level.lower(),
    )
    return 0


def build_client_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="short-cli", description="Call a remote short key service")
    parser.add_argument("--http-addr", required=True, help="HTTP address of the short key service")
    parser.add_argument("--method", choices=["create", "lookup"], default="create", help="create, lookup")
    parser.add_argument("arg", help="value to create, or key to look up")
    return parser


def client_main(argv: Optional[Sequence[str]] = None, client: Optional[HTTPClient] = None) -> int:
    args = build_client_parser().parse_args(argv)
    client = client or HTTPClient(args.http_addr)
    try:
        with client:
            if args.method == "create":
                result = client.create(args.arg)
            else:
                result = client.lookup(args.arg)
    except (ShortError, httpx.HTTPError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print(result)
    return 0


if __name__ == "__main__":
    sys.exit(client_main())
