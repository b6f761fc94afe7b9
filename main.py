#!/usr/bin/env python3
"""
KeyDash admin CLI -- manage the credential registry and check Yubico access.

Usage:
  python main.py keys list
  python main.py keys add cccccccbcjdf
  python main.py keys add cccccccbcjdf --paying
  python main.py keys remove cccccccbcjdf
  python main.py keys paying cccccccbcjdf
  python main.py keys paying cccccccbcjdf --off
  python main.py check-otp <44-char OTP>

Reads the same settings as the server (environment variables or .env):
  DATABASE_URL        Registry database. Defaults to keydash.db next to the code.
  YUBICO_CLIENT_ID    Required for check-otp.
  YUBICO_SECRET_KEY   Required for check-otp (base64, as issued by Yubico).
"""

import argparse
import re
import sys

from sqlalchemy.exc import IntegrityError

from auth.errors import ConfigurationError, MalformedInput, ServiceUnavailable
from auth.login import YUBIKEY_ID_LENGTH, extract_credential_id
from auth.otp import YubicoVerifier
from auth.store import CredentialStore
from core.config import get_settings

# Yubico public IDs are modhex: only these 16 letters appear.
_MODHEX_ID_RE = re.compile(rf"^[cbdefghijklnrtuv]{{{YUBIKEY_ID_LENGTH}}}$")


def _open_store() -> CredentialStore:
    return CredentialStore(get_settings().database_url)


def _normalize_id(raw: str) -> str:
    yubikey_id = raw.strip().lower()
    if not _MODHEX_ID_RE.match(yubikey_id):
        print(f"  [!] '{raw}' is not a 12-character YubiKey ID (modhex letters only).")
        sys.exit(2)
    return yubikey_id


def cmd_keys_list(args: argparse.Namespace) -> int:
    store = _open_store()
    try:
        credentials = store.list_all()
        total = store.count()
    finally:
        store.close()
    if not credentials:
        print("  No YubiKeys registered.")
        return 0
    for c in credentials:
        paying = "paying" if c.is_paying else "free"
        print(f"  {c.yubikey_id}  {paying:<6}  {c.created_at}")
    print(f"\n  {total} registered.")
    return 0


def cmd_keys_add(args: argparse.Namespace) -> int:
    yubikey_id = _normalize_id(args.yubikey_id)
    store = _open_store()
    try:
        store.register(yubikey_id, is_paying=args.paying)
    except IntegrityError:
        print(f"  [!] {yubikey_id} is already registered.")
        return 1
    finally:
        store.close()
    print(f"  Registered {yubikey_id}.")
    return 0


def cmd_keys_remove(args: argparse.Namespace) -> int:
    yubikey_id = _normalize_id(args.yubikey_id)
    store = _open_store()
    try:
        removed = store.remove(yubikey_id)
    finally:
        store.close()
    if not removed:
        print(f"  [!] {yubikey_id} is not registered.")
        return 1
    print(f"  Removed {yubikey_id}. Its sessions stop working on their next request.")
    return 0


def cmd_keys_paying(args: argparse.Namespace) -> int:
    yubikey_id = _normalize_id(args.yubikey_id)
    store = _open_store()
    try:
        updated = store.set_paying(yubikey_id, not args.off)
    finally:
        store.close()
    if not updated:
        print(f"  [!] {yubikey_id} is not registered.")
        return 1
    print(f"  {yubikey_id} is now {'free' if args.off else 'paying'}.")
    return 0


def cmd_check_otp(args: argparse.Namespace) -> int:
    """Run one verification round-trip. Useful for checking API credentials."""
    settings = get_settings()
    try:
        yubikey_id = extract_credential_id(args.otp)
    except MalformedInput as e:
        print(f"  [!] {e}")
        return 2
    verifier = YubicoVerifier(
        client_id=settings.yubico_client_id,
        secret_key=settings.yubico_secret_key,
        url=settings.yubico_verify_url,
        timeout=settings.yubico_timeout_seconds,
    )
    print(f"  Verifying OTP for {yubikey_id}...", end=" ", flush=True)
    try:
        ok = verifier.verify(args.otp)
    except ConfigurationError as e:
        print(f"\n  [!] Configuration error: {e}")
        return 2
    except ServiceUnavailable:
        print("\n  [!] Yubico validation service unavailable. Try again.")
        return 1
    print("valid." if ok else "REJECTED.")
    return 0 if ok else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="keydash",
        description="KeyDash admin tools.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py keys add cccccccbcjdf
  python main.py check-otp cccccccbcjdfhfhbbkrkkbjrtugjikvlrhiuculffbrr
""",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    keys = sub.add_parser("keys", help="Manage registered YubiKeys")
    keys_sub = keys.add_subparsers(dest="keys_command", required=True)

    keys_list = keys_sub.add_parser("list", help="List registered YubiKeys")
    keys_list.set_defaults(func=cmd_keys_list)

    keys_add = keys_sub.add_parser("add", help="Register a YubiKey by its 12-character ID")
    keys_add.add_argument("yubikey_id", metavar="ID")
    keys_add.add_argument("--paying", action="store_true", help="Mark the key as a paying account")
    keys_add.set_defaults(func=cmd_keys_add)

    keys_remove = keys_sub.add_parser("remove", help="Remove a YubiKey")
    keys_remove.add_argument("yubikey_id", metavar="ID")
    keys_remove.set_defaults(func=cmd_keys_remove)

    keys_paying = keys_sub.add_parser("paying", help="Mark a registered YubiKey as a paying account")
    keys_paying.add_argument("yubikey_id", metavar="ID")
    keys_paying.add_argument("--off", action="store_true", help="Mark the key as free instead")
    keys_paying.set_defaults(func=cmd_keys_paying)

    check = sub.add_parser("check-otp", help="Verify one OTP against the Yubico service")
    check.add_argument("otp", metavar="OTP")
    check.set_defaults(func=cmd_check_otp)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
