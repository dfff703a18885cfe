"""Command line front end for quick requests."""

from __future__ import annotations

import argparse
import json
import logging
import sys

from httpreq.client import default_client
from httpreq.exceptions import HttpReqError
from httpreq.middleware import expect_status_middleware
from httpreq.options import (
    Option,
    with_body,
    with_debug,
    with_form,
    with_header,
    with_middleware,
    with_query,
    with_retry_times,
    with_timeout,
)


HTTP_METHODS = {"get", "post", "put", "patch", "delete", "head", "options"}


def _split(raw: str, sep: str) -> tuple[str, str]:
    key, found, value = raw.partition(sep)
    if not found or not key.strip():
        raise ValueError(raw)
    return key.strip(), value.strip()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="httpreq")
    parser.add_argument("method", type=str.lower, choices=sorted(HTTP_METHODS))
    parser.add_argument("url")
    parser.add_argument("-H", "--header", action="append", default=[], help="header as 'Key: Value'")
    parser.add_argument("-q", "--query", action="append", default=[], help="query parameter as key=value")
    parser.add_argument("-f", "--form", action="append", default=[], help="form field as key=value")
    parser.add_argument("-d", "--data", help="raw request body")
    parser.add_argument("--json", action="store_true", help="parse --data as JSON and send it as JSON")
    parser.add_argument("--retry", type=int, default=0)
    parser.add_argument("--timeout", type=float, default=0.0)
    parser.add_argument("--expect-status", type=int)
    parser.add_argument("--debug", action="store_true")
    parser.add_argument("-i", "--include", action="store_true", help="print status line and headers")
    return parser


def _collect_options(parser: argparse.ArgumentParser, args: argparse.Namespace) -> list[Option]:
    options: list[Option] = []
    try:
        for raw in args.header:
            options.append(with_header(*_split(raw, ":")))
        for raw in args.query:
            options.append(with_query(*_split(raw, "=")))
        for raw in args.form:
            options.append(with_form(*_split(raw, "=")))
    except ValueError as exc:
        parser.error(f"malformed key/value pair: {exc}")

    if args.data is not None:
        body: object = args.data
        if args.json:
            try:
                body = json.loads(args.data)
            except ValueError as exc:
                parser.error(f"--data is not valid JSON: {exc}")
        options.append(with_body(body))

    if args.retry < 0:
        parser.error("--retry must be non-negative")
    options.append(with_retry_times(args.retry))
    if args.timeout > 0:
        options.append(with_timeout(args.timeout))
    if args.expect_status is not None:
        options.append(with_middleware(expect_status_middleware(args.expect_status)))
    if args.debug:
        options.append(with_debug(True))
    return options


def _main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    options = _collect_options(parser, args)

    if args.debug:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    try:
        response = default_client().request(args.method, args.url, *options)
    except HttpReqError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if args.include:
        print(f"{response.raw.http_version} {response.status}")
        for key, value in response.headers.items():
            print(f"{key}: {value}")
        print()
    print(response.text)
    return 0


def main() -> None:
    raise SystemExit(_main())
