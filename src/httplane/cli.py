"""Command-line interface for httplane."""

import argparse
import sys
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from . import __version__
from .errors import HttpLaneError
from .http.client import HttpClient
from .http.handlers import BodyHandlers
from .http.request import BodyPublishers, Request
from .logging_config import setup_logging
from .models.config import AuthConfig, AuthType, ClientConfig, HttpVersion, RedirectPolicy

EXIT_OK = 0
EXIT_HTTP_ERROR = 1
EXIT_TRANSPORT_ERROR = 2


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog="httplane",
        description="Send an HTTP request and print the response body",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Fetch a document
  httplane http://localhost:8080/xml

  # Follow redirects, refusing https -> http downgrades
  httplane http://localhost:8080/redirect/3 -L normal

  # Submit a form
  httplane http://localhost:8080/post -d "firstName=Ramin&lastName=Zare" --form

  # Answer a Basic challenge and show the response head
  httplane http://localhost:8080/basic-auth/user/passwd -u user:passwd -i

  # Save the body to a file
  httplane http://localhost:8080/image/png -o image.png
        """,
    )

    parser.add_argument("url", help="Absolute http(s) URL to request")

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    # Request
    request_group = parser.add_argument_group("request")
    request_group.add_argument(
        "--request",
        "-X",
        dest="method",
        metavar="METHOD",
        default=None,
        help="Request method (default: GET, or POST with --data)",
    )
    request_group.add_argument(
        "--header",
        "-H",
        dest="headers",
        action="append",
        default=[],
        metavar="'NAME: VALUE'",
        help="Add a request header (repeatable)",
    )
    request_group.add_argument(
        "--data",
        "-d",
        default=None,
        help="Request body",
    )
    request_group.add_argument(
        "--form",
        action="store_true",
        help="Send --data as application/x-www-form-urlencoded",
    )
    request_group.add_argument(
        "--timeout",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Overall request deadline",
    )
    request_group.add_argument(
        "--http2",
        action="store_true",
        help="Prefer HTTP/2 (falls back to HTTP/1.1)",
    )

    # Client behaviour
    client_group = parser.add_argument_group("client")
    client_group.add_argument(
        "--location",
        "-L",
        dest="redirect_policy",
        choices=[p.value for p in RedirectPolicy],
        default=None,
        help="Redirect policy (default: never)",
    )
    client_group.add_argument(
        "--max-redirects",
        type=int,
        default=None,
        metavar="N",
        help="Maximum redirects per request (default: 20)",
    )
    client_group.add_argument(
        "--user",
        "-u",
        default=None,
        metavar="USER:PASS",
        help="Credentials answered to a Basic challenge",
    )
    client_group.add_argument(
        "--config",
        type=Path,
        default=None,
        metavar="YAML",
        help="Load client configuration from a YAML file",
    )

    # Output control
    output_group = parser.add_argument_group("output control")
    output_group.add_argument(
        "--output",
        "-o",
        type=Path,
        default=None,
        metavar="FILE",
        help="Write the body to FILE instead of stdout",
    )
    output_group.add_argument(
        "--include",
        "-i",
        action="store_true",
        help="Print the status line and headers to stderr",
    )
    output_group.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Verbose logging",
    )
    output_group.add_argument(
        "--trace",
        action="store_true",
        help="Log connection opens, reuse and closes to stderr",
    )

    return parser


def build_config(args: argparse.Namespace) -> ClientConfig:
    """Merge --config with command-line overrides."""
    base = ClientConfig.from_yaml_file(args.config) if args.config else ClientConfig()
    data: dict[str, Any] = base.model_dump(exclude_none=True)

    if args.redirect_policy is not None:
        data["redirect_policy"] = args.redirect_policy
    if args.max_redirects is not None:
        data["max_redirects"] = args.max_redirects
    if args.http2:
        data["version"] = HttpVersion.HTTP_2
    if args.user:
        username, _, password = args.user.partition(":")
        if not username:
            raise ValueError("--user requires a username before ':'")
        data["auth"] = AuthConfig(type=AuthType.BASIC, username=username, password=password)
    if args.verbose:
        data["log_level"] = "DEBUG"

    return ClientConfig.model_validate(data)


def build_request(args: argparse.Namespace) -> Request:
    """Translate request arguments into a Request."""
    builder = Request.builder(args.url).timeout(args.timeout)

    for raw in args.headers:
        name, sep, value = raw.partition(":")
        if not sep:
            raise ValueError(f"Header must look like 'Name: value', got {raw!r}")
        builder.header(name.strip(), value.strip())

    body = None
    if args.data is not None:
        body = BodyPublishers.of_string(args.data)
        if args.form:
            builder.set_header("Content-Type", "application/x-www-form-urlencoded")

    method = args.method or ("POST" if body is not None else "GET")
    return builder.method(method, body).build()


def print_head(console: Console, response: Any) -> None:
    console.print(f"[bold]{response.version.value} {response.status_code}[/bold]", highlight=False)
    for name, value in response.headers:
        console.print(f"[cyan]{escape(name)}[/cyan]: {escape(value)}", highlight=False)
    console.print()


def run_request(args: argparse.Namespace) -> int:
    """Send the request described by ``args`` and write the result."""
    console = Console(stderr=True)

    try:
        config = build_config(args)
        request = build_request(args)
    except (ValidationError, ValueError, OSError) as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        return EXIT_TRANSPORT_ERROR

    setup_logging(
        config.log_level,
        str(config.log_file) if config.log_file else None,
        trace_connections=args.trace,
    )

    handler = BodyHandlers.of_file(args.output) if args.output else BodyHandlers.of_bytes()

    try:
        with HttpClient(config) as client:
            response = client.send(request, handler)
    except HttpLaneError as e:
        console.print(f"[red]Error:[/red] {e}")
        if args.verbose:
            console.print_exception()
        return EXIT_TRANSPORT_ERROR

    if args.include:
        print_head(console, response)

    if args.output is None:
        sys.stdout.buffer.write(response.body)
        sys.stdout.buffer.flush()
    elif args.verbose:
        console.print(f"Saved body to {response.body}")

    return EXIT_OK if response.status_code < 400 else EXIT_HTTP_ERROR


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)
    return run_request(args)


if __name__ == "__main__":
    sys.exit(main())
