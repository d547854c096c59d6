"""Command-line control surface for the login lockdown ledger."""
import argparse
import logging
import sys

from pydantic import ValidationError

from login_lockdown import db
from login_lockdown.config import ConfigSettingsProvider, load_config
from login_lockdown.errors import InvalidUsername, LockdownError, NotLocked, PersistenceError
from login_lockdown.formatting import FORMATS, format_items
from login_lockdown.ledger import LockdownLedger
from login_lockdown.models import LIST_COLUMNS

EPILOG = """\
examples:
  $ login-lockdown lockdown 127.0.0.1 admin
  Success: IP address 127.0.0.1 locked down.

  $ if login-lockdown is-locked 127.0.0.1; then echo blocked; fi

is-locked exits 0 when the IP address is locked down, 1 when it is not and
2 when the lockdown store cannot be read.
"""


def success(message: str) -> int:
    print(f"Success: {message}")
    return 0


def error(message: str, code: int = 1) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return code


def cmd_lock(ledger: LockdownLedger, args) -> int:
    try:
        ledger.lock(args.ip, args.username)
    except InvalidUsername:
        return error("Invalid username.")
    return success(f"IP address {args.ip} locked down.")


def cmd_is_locked(ledger: LockdownLedger, args) -> int:
    if ledger.is_locked(args.ip):
        print(f"IP address {args.ip} is locked down.")
        return 0
    print(f"IP address {args.ip} is not locked down.", file=sys.stderr)
    return 1


def cmd_list(ledger: LockdownLedger, args) -> int:
    items = [item.model_dump() for item in ledger.list_active()]
    sys.stdout.write(format_items(args.format, items, LIST_COLUMNS))
    return 0


def cmd_release(ledger: LockdownLedger, args) -> int:
    try:
        ledger.release(args.ip)
    except NotLocked as exc:
        return error(str(exc))
    except PersistenceError:
        return error(f"Could not release IP address {args.ip}.")
    return success(f"IP address {args.ip} released.")


def cmd_record_failure(ledger: LockdownLedger, args) -> int:
    try:
        locked = ledger.record_failure(args.ip, args.username)
    except InvalidUsername:
        return error("Invalid username.")
    if locked:
        return success(f"IP address {args.ip} locked down.")
    return success(f"Failed login recorded for IP address {args.ip}.")


def cmd_purge(ledger: LockdownLedger, args) -> int:
    removed = ledger.purge()
    return success(f"Removed {removed} expired failed login(s).")


def cmd_update_setting(provider: ConfigSettingsProvider, args) -> int:
    try:
        provider.update_setting(args.name, args.value)
    except NotImplementedError as exc:
        return error(str(exc))
    return success("Setting updated.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="login-lockdown",
        description="Manages login lockdowns of IP addresses.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="path to a JSON config file")
    parser.add_argument("--db-url", help="database URL, overrides the config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="log debug output to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("lockdown", aliases=["lock"], help="lock down an IP address for a username")
    p.add_argument("ip")
    p.add_argument("username")
    p.set_defaults(func=cmd_lock)

    p = sub.add_parser("is-locked-down", aliases=["is-locked"], help="exit 0 if the IP address is locked down, 1 if not, 2 on store errors")
    p.add_argument("ip")
    p.set_defaults(func=cmd_is_locked, store_error_code=2)

    p = sub.add_parser("list", help="list the currently locked down IP addresses")
    p.add_argument("--format", choices=FORMATS, default="table")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("release", help="release a locked down IP address")
    p.add_argument("ip")
    p.set_defaults(func=cmd_release)

    p = sub.add_parser("record-failure", help="count a failed login, locking the IP at the threshold")
    p.add_argument("ip")
    p.add_argument("username")
    p.set_defaults(func=cmd_record_failure)

    p = sub.add_parser("purge", help="delete failed logins outside the observation window")
    p.set_defaults(func=cmd_purge)

    p = sub.add_parser("update-setting", help="update a lockdown setting")
    p.add_argument("name")
    p.add_argument("value")
    p.set_defaults(func=cmd_update_setting, settings_only=True)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    cfg = load_config(args.config)
    if args.db_url:
        cfg.db_url = args.db_url
    provider = ConfigSettingsProvider(cfg)
    if getattr(args, "settings_only", False):
        return args.func(provider, args)

    try:
        db.init_db(cfg.db_url, cfg.db_timeout_s)
        ledger = LockdownLedger(provider, events_log_file=cfg.events_log_file or None)
        return args.func(ledger, args)
    except LockdownError as exc:
        # is-locked reserves exit code 1 for "not locked".
        return error(str(exc), getattr(args, "store_error_code", 1))
    except ValidationError as exc:
        return error(f"Invalid lockdown settings: {exc.errors()[0]['msg']}", getattr(args, "store_error_code", 1))


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
