#!/usr/bin/env python3
"""
SecretKeeper -- register, log in with a password or Google, keep secrets.

Usage:
  python main.py
  python main.py --port 8000
  python main.py --host 0.0.0.0 --port 8000
  python main.py --reload

Environment variables (see core/config.py for the full list):
  SECRET_KEY            Signs the session cookie. Required unless DEBUG=true.
  DATABASE_URL          SQLAlchemy URL. Defaults to a SQLite file next to the code.
  PORT                  Listen port (default 3000).
  GOOGLE_CLIENT_ID      Enables "Sign in with Google" together with
  GOOGLE_CLIENT_SECRET  the client secret.
"""

import argparse

import uvicorn

from core.config import get_settings


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        description="Run the SecretKeeper web application.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--host", default=settings.host, help=f"Bind address (default: {settings.host})")
    parser.add_argument("--port", type=int, default=settings.port, help=f"Listen port (default: {settings.port})")
    parser.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    args = parser.parse_args()

    print(f"Server listening on http://{args.host}:{args.port}")
    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
