"""
CLI entry point for tabhub.

Usage:
    tabhub                           # HTTP/SSE host transport on port 8080
    tabhub --mcp                     # MCP tools over stdio
    tabhub --chrome localhost:9223   # Different DevTools endpoint
"""

import argparse
import logging
import sys

from .auth import TokenAuth
from .config import Config


def build_config(args: argparse.Namespace) -> Config:
    config = Config(
        host=args.host,
        port=args.port,
        chrome_address=args.chrome,
        auth=not args.no_auth,
        token=args.token,
        mailbox_size=args.mailbox_size,
        command_timeout=args.command_timeout,
        strict_commands=args.strict,
        log_level=args.log_level,
    )
    if args.allow_scheme:
        config.allowed_schemes = tuple(dict.fromkeys(config.allowed_schemes + tuple(args.allow_scheme)))
    return config


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="tabhub",
        description="Tab state observation and chrome.tabs command surface for extension hosts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  tabhub                              # Serve hosts on 127.0.0.1:8080
  tabhub --port 9000 --host 0.0.0.0   # Listen elsewhere
  tabhub --strict                     # NotFound errors instead of silent no-ops
  tabhub --mcp                        # MCP stdio server

Chrome must be running with remote debugging:
  google-chrome --remote-debugging-port=9222 --remote-allow-origins=*

Extension hosts:
  GET  /events?token=TOKEN&window=WINDOW_ID   (SSE)
  POST /invoke/tabs.query  {"host": HOST_ID, "args": [{"active": true}]}
        """
    )

    parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=Config.DEFAULT_PORT,
                        help=f"HTTP port (default: {Config.DEFAULT_PORT})")
    parser.add_argument("--chrome", default=Config.DEFAULT_CHROME_ADDRESS,
                        help=f"Chrome DevTools address (default: {Config.DEFAULT_CHROME_ADDRESS})")
    parser.add_argument("--mcp", action="store_true", help="Serve MCP tools over stdio instead of HTTP")

    parser.add_argument("--mailbox-size", type=int, default=256,
                        help="Events buffered per host before dropping (default: 256)")
    parser.add_argument("--command-timeout", type=float, default=10.0,
                        help="Seconds a command may take (default: 10)")
    parser.add_argument("--strict", action="store_true",
                        help="Report unknown tabs on mutating commands as errors")
    parser.add_argument("--allow-scheme", action="append", default=[],
                        help="Additional URL scheme allowed for navigation (repeatable)")

    parser.add_argument("--no-auth", action="store_true", help="Disable token authentication")
    parser.add_argument("--token", default=None, help="Use specific auth token")
    parser.add_argument("--reset-token", action="store_true", help="Generate new auth token and exit")
    parser.add_argument("--show-token", action="store_true", help="Show current auth token and exit")

    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Log verbosity")

    args = parser.parse_args(argv)

    if args.reset_token:
        token = TokenAuth.reset()
        print(f"New token: {token}")
        print(f"Saved to: {TokenAuth.TOKEN_FILE}")
        return

    if args.show_token:
        token = TokenAuth.load()
        if token:
            print(f"Token: {token}")
            print(f"File: {TokenAuth.TOKEN_FILE}")
        else:
            print("No token found. Run tabhub to generate one.")
        return

    if args.mailbox_size < 1:
        print("Error: --mailbox-size must be at least 1", file=sys.stderr)
        sys.exit(1)

    logging.basicConfig(
        stream=sys.stderr,
        level=args.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    from .server import run
    run(build_config(args), transport="mcp" if args.mcp else "http")


if __name__ == "__main__":
    main()
