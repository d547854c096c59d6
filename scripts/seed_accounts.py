import argparse
import json
from pathlib import Path
import sys


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from login_lockdown import db
from login_lockdown.config import load_config


def load_usernames(path: str) -> list[str]:
    # Either ["alice", "bob"] or [{"username": "alice"}, ...]
    entries = json.loads(Path(path).read_text(encoding="utf-8"))
    return [e["username"] if isinstance(e, dict) else e for e in entries]


def main():
    parser = argparse.ArgumentParser(description="Register usernames with the lockdown account store")
    parser.add_argument("usernames", nargs="*")
    parser.add_argument("--file", help="JSON list of usernames (or objects with a username key)")
    parser.add_argument("--config", help="path to a JSON config file")
    args = parser.parse_args()

    cfg = load_config(args.config)
    db.init_db(cfg.db_url, cfg.db_timeout_s)

    usernames = list(args.usernames)
    if args.file:
        usernames.extend(load_usernames(args.file))
    if not usernames:
        parser.error("no usernames given")

    added = 0
    for username in usernames:
        if db.add_account(username):
            added += 1
        else:
            print(f"{username} already registered")
    print("Seeded", added, "accounts into", cfg.db_url)


if __name__ == "__main__":
    main()
