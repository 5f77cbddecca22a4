"""CLI entry point for simple-oauth-gate.

Runs the gateway under uvicorn and checks the environment before deploying.
"""
import argparse
import sys

import uvicorn

from config import load_config

VERSION = "1.0.0"


# ============== Commands ==============

def cmd_serve(args) -> int:
    """Run the gateway."""
    config = load_config()
    host = args.host or config.host
    port = args.port or config.port
    print(f"Starting gateway on http://{host}:{port}/ (BASE_URL {config.base_url})")
    uvicorn.run("main:app", host=host, port=port, reload=args.reload, log_config=None)
    return 0


def cmd_check_config(args) -> int:
    """Report missing or risky settings; exit 1 when required ones are missing."""
    config = load_config()
    missing = config.missing()

    print(f"BASE_URL:        {config.base_url}")
    print(f"Redirect URI:    {config.redirect_uri}")
    print(f"Scope:           {config.scope}")
    print(f"Allowed emails:  {len(config.allowed_emails)}")
    print(f"Secure cookies:  {config.cookie_secure}")
    print(f"Store:           {'supabase:' + config.kv_table if config.supabase_url and config.supabase_key else 'memory'}")

    if config.session_secret_generated:
        print("Warning: SESSION_SECRET is not set; sessions end on every restart.")
    if not config.cookie_secure:
        print("Warning: cookies are not Secure; only use this for local development.")

    if missing:
        print(f"Missing: {', '.join(missing)}")
        return 1
    print("Configuration OK")
    return 0


def cmd_version(args) -> int:
    print(f"simple-oauth-gate {VERSION}")
    return 0


# ============== Main Entry Point ==============

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="oauth-gate",
        description="Simple OAuth Gate - OAuth2 sign-in with an email allow-list",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  serve         Run the gateway (default)
  check-config  Validate environment configuration
  version       Show version

Examples:
  oauth-gate serve --port 8000
  oauth-gate check-config
"""
    )
    parser.add_argument("--version", "-v", action="store_true", help=argparse.SUPPRESS)

    subparsers = parser.add_subparsers(dest="command")

    serve = subparsers.add_parser("serve", help="Run the gateway")
    serve.add_argument("--host", default=None, help="Listen address (default: $HOST or 0.0.0.0)")
    serve.add_argument("--port", type=int, default=None, help="Listen port (default: $PORT or 8000)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes")
    serve.set_defaults(func=cmd_serve)

    check = subparsers.add_parser("check-config", help="Validate environment configuration")
    check.set_defaults(func=cmd_check_config)

    version = subparsers.add_parser("version", help="Show version")
    version.set_defaults(func=cmd_version)

    return parser


def main(argv=None) -> int:
    """Main entry point for CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        return cmd_version(args)
    if args.command is None:
        args = parser.parse_args(["serve"])
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
