#!/usr/bin/env python3
"""
AuthLab -- Digest authentication client.

Walks the RFC 2617 challenge-response flow against a running server and
prints each step.

Usage:
  python main.py http://localhost:8000/protected
  python main.py http://localhost:8000/api/v1/auth/digest --user admin --password secret
  python main.py http://localhost:8000/protected --json

Environment variables:
  AUTHLAB_PASSWORD   Used when --password is not given, so the secret stays
                     out of shell history.
"""

import argparse
import json
import os
import sys

import requests

from auth.client import fetch_with_digest


def main() -> int:
    parser = argparse.ArgumentParser(
        prog="authlab",
        description="Authenticate to a URL with HTTP Digest (MD5, qop=auth).",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py http://localhost:8000/protected
  python main.py http://localhost:8000/protected --user admin --password secret
""",
    )
    parser.add_argument("url", help="Protected URL to request.")
    parser.add_argument("--user", default="admin", help="Username (default: admin).")
    parser.add_argument("--password", default=None, help="Password. Falls back to $AUTHLAB_PASSWORD, then 'secret'.")
    parser.add_argument("--method", default="GET", help="HTTP method (default: GET).")
    parser.add_argument("--json", action="store_true", help="Print only the response body as JSON.")
    args = parser.parse_args()

    password = args.password or os.environ.get("AUTHLAB_PASSWORD") or "secret"

    try:
        resp = fetch_with_digest(args.url, args.user, password, method=args.method)
    except requests.RequestException as e:
        print(f"  [!] Request failed: {e}", file=sys.stderr)
        return 2
    except ValueError as e:
        print(f"  [!] Bad challenge from server: {e}", file=sys.stderr)
        return 2

    try:
        body = resp.json()
    except ValueError:
        body = resp.text

    if args.json:
        print(json.dumps(body, indent=2))
    else:
        print(f"  {args.method.upper()} {args.url} -> {resp.status_code}")
        if resp.status_code == 401:
            print(f"  WWW-Authenticate: {resp.headers.get('WWW-Authenticate', '')}")
        print(f"  {body}")
    return 0 if resp.ok else 1


if __name__ == "__main__":
    sys.exit(main())
