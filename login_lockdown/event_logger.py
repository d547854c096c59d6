import json
import logging
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

_total_events = 0


def log_event(
    path: str | None,
    action: str,
    ip: str,
    username: str | None,
    result: str,
    extra: dict | None = None,
):
    """Append one ledger event as a JSON line to ``path``; a falsy path disables logging."""
    global _total_events
    if not path:
        return
    _total_events += 1
    event_id = _total_events

    record = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_id": event_id,
        "action": action,
        "ip": ip,
        "username": username,
        "result": result,
    }
    if extra:
        record.update(extra)

    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record, default=str) + "\n")
    except OSError as exc:
        # Callers log after commit, so a failed write is reported rather than raised.
        logger.warning("could not write %s event to %s: %s", action, path, exc)
