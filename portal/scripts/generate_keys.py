#!/usr/bin/env python3
"""
Cockpit Portal Key Generator
==============================
Prints fresh key material for the gateway.

Usage:
  python -m portal.scripts.generate_keys
  python -m portal.scripts.generate_keys --api-key

Output:
  APP_KEY=base64:<256-bit key>                 ← encrypts stored endpoint secrets
  GATEWAY_API_KEY=<plain-text key>             ← give this to the upstream portal
  GATEWAY_API_KEY_HASH=<bcrypt hash>           ← set this on the gateway

Rotating APP_KEY makes every stored endpoint secret unreadable; re-enter
secrets after a rotation. The plain-text API key is printed ONCE and only
its bcrypt hash belongs in the gateway environment.
"""

import argparse
import secrets
import sys

import bcrypt

from portal.services.gateway.codec import SecretCodec


def make_api_key() -> tuple[str, str]:
    """Return (plain_key, bcrypt_hash)."""
    plain_key = secrets.token_urlsafe(32)
    key_hash = bcrypt.hashpw(plain_key.encode(), bcrypt.gensalt(rounds=12)).decode()
    return plain_key, key_hash


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Generate Cockpit Portal gateway keys",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--api-key", action="store_true",
        help="Also generate an upstream API key and its bcrypt hash",
    )
    parser.add_argument(
        "--quiet", action="store_true",
        help="Print only KEY=value lines (for piping into an env file)",
    )
    args = parser.parse_args(argv)

    lines = [f"APP_KEY=base64:{SecretCodec.generate_key()}"]
    if args.api_key:
        plain_key, key_hash = make_api_key()
        lines.append(f"GATEWAY_API_KEY={plain_key}")
        lines.append(f"GATEWAY_API_KEY_HASH={key_hash}")

    if args.quiet:
        print("\n".join(lines))
        return 0

    print("\nSet these environment variables:\n")
    for line in lines:
        print(f"  {line}")
    print("\n⚠️  These values will NOT be shown again. Store them securely.", file=sys.stderr)
    if args.api_key:
        print("    Only GATEWAY_API_KEY_HASH goes on the gateway; REQUIRE_API_KEY=true enables it.", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
