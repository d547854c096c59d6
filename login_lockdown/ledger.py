import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Protocol

from sqlalchemy import delete, func, select, update

from login_lockdown import db
from login_lockdown.errors import InvalidUsername, NotLocked, PersistenceError
from login_lockdown.event_logger import log_event
from login_lockdown.models import (
    FailedAttemptModel,
    LockdownListItem,
    LockdownModel,
    LockdownSettings,
    LockRecord,
)

logger = logging.getLogger(__name__)


class SettingsProvider(Protocol):
    def get_settings(self) -> LockdownSettings: ...


def _utc(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, timezone.utc).replace(tzinfo=None)


class LockdownLedger:
    """Failed-login counter and lock records per IP address.

    Every operation takes the IP explicitly and reads its settings from the
    provider at call time. Timestamps are naive UTC, taken from ``time.time()``.
    Lock records are never deleted: expiry is decided on read by comparing
    ``release_at`` with the current time.
    """

    def __init__(
        self,
        settings: SettingsProvider,
        username_validator: Optional[Callable[[str], bool]] = None,
        events_log_file: Optional[str] = None,
    ):
        self.settings = settings
        self.username_validator = username_validator or db.account_exists
        self.events_log_file = events_log_file

    def record_failure(self, ip: str, username: str) -> bool:
        """Count a failed login for ``ip``; lock it once the threshold is reached.

        Returns True when this failure locked (or re-locked) the IP.
        Raises InvalidUsername without counting anything if ``username`` is rejected.
        """
        settings = self.settings.get_settings()
        self._check_username(ip, username, settings, "failure")
        now = self._now()

        record = None
        with db.get_session(exclusive=True) as session:
            session.add(FailedAttemptModel(ip=ip, username=username, attempted_at=now))
            session.flush()
            stmt = select(func.count(FailedAttemptModel.id)).where(
                FailedAttemptModel.ip == ip,
                self._window_clause(now, settings),
            )
            failures = session.execute(stmt).scalar_one()
            if failures >= settings.max_retries:
                record = self._lock(session, ip, username, now, settings)
                session.execute(
                    delete(FailedAttemptModel)
                    .where(FailedAttemptModel.ip == ip)
                    .execution_options(synchronize_session=False)
                )

        if record is None:
            log_event(self.events_log_file, "failure", ip, username, "counted", {"failures": failures})
            return False

        logger.info("locked %s after %d failures", ip, failures)
        self._log_lock(record, "threshold")
        return True

    def lock(self, ip: str, username: str) -> LockRecord:
        """Lock ``ip`` right away, without counting failures."""
        settings = self.settings.get_settings()
        self._check_username(ip, username, settings, "lock")
        now = self._now()

        with db.get_session(exclusive=True) as session:
            record = self._lock(session, ip, username, now, settings)

        self._log_lock(record, "manual")
        return record

    def is_locked(self, ip: str) -> bool:
        return self.get_active(ip) is not None

    def get_active(self, ip: str) -> Optional[LockRecord]:
        now = self._now()
        with db.get_session() as session:
            lock = self._active_model(session, ip, now)
            return LockRecord.from_orm_model(lock) if lock is not None else None

    def list_active(self) -> List[LockdownListItem]:
        """Active locks, oldest first, with whole minutes left rounded up."""
        now = self._now()
        with db.get_session() as session:
            stmt = (
                select(LockdownModel)
                .where(LockdownModel.manually_released.is_(False), LockdownModel.release_at > now)
                .order_by(LockdownModel.locked_at, LockdownModel.id)
            )
            records = [LockRecord.from_orm_model(m) for m in session.execute(stmt).scalars()]

        return [
            LockdownListItem(lockdown_ID=r.id, minutes_left=r.minutes_left(now), lockdown_IP=r.ip)
            for r in records
        ]

    def release(self, ip: str) -> bool:
        now = self._now()
        try:
            with db.get_session(exclusive=True) as session:
                lock = self._active_model(session, ip, now)
                if lock is None:
                    raise NotLocked(ip)
                lock_id, username = lock.id, lock.username
                result = session.execute(
                    update(LockdownModel)
                    .where(LockdownModel.id == lock_id, LockdownModel.manually_released.is_(False))
                    .values(release_at=now, manually_released=True)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise PersistenceError(f"Could not release IP address {ip}.")
        except NotLocked:
            log_event(self.events_log_file, "release", ip, None, "not_locked")
            raise

        log_event(self.events_log_file, "release", ip, username, "released", {"lockdown_id": lock_id})
        return True

    def purge(self) -> int:
        """Delete failed-login rows that fell out of the observation window."""
        settings = self.settings.get_settings()
        cutoff = self._now() - timedelta(seconds=settings.observation_window_s)
        with db.get_session(exclusive=True) as session:
            result = session.execute(
                delete(FailedAttemptModel)
                .where(FailedAttemptModel.attempted_at <= cutoff)
                .execution_options(synchronize_session=False)
            )
            removed = result.rowcount

        log_event(self.events_log_file, "purge", "*", None, "purged", {"removed": removed})
        return removed

    def _now(self) -> datetime:
        return _utc(time.time())

    def _check_username(self, ip: str, username: str, settings: LockdownSettings, action: str) -> None:
        if username and username.strip():
            if settings.lockout_invalid_usernames or self.username_validator(username):
                return
        log_event(self.events_log_file, action, ip, username, "invalid_username")
        raise InvalidUsername(username)

    def _window_clause(self, now: datetime, settings: LockdownSettings):
        window = settings.observation_window_s
        if settings.window_mode == "fixed":
            epoch = now.replace(tzinfo=timezone.utc).timestamp()
            return FailedAttemptModel.attempted_at >= _utc(epoch - epoch % window)
        return FailedAttemptModel.attempted_at > now - timedelta(seconds=window)

    def _active_model(self, session, ip: str, now: datetime) -> Optional[LockdownModel]:
        stmt = (
            select(LockdownModel)
            .where(
                LockdownModel.ip == ip,
                LockdownModel.manually_released.is_(False),
                LockdownModel.release_at > now,
            )
            .order_by(LockdownModel.locked_at.desc(), LockdownModel.id.desc())
            .limit(1)
        )
        return session.execute(stmt).scalar_one_or_none()

    def _lock(self, session, ip: str, username: str, now: datetime, settings: LockdownSettings) -> LockRecord:
        release_at = now + timedelta(seconds=settings.lockout_duration_s)
        lock = self._active_model(session, ip, now)
        if lock is None:
            lock = LockdownModel(
                ip=ip, username=username, locked_at=now, release_at=release_at, manually_released=False
            )
            session.add(lock)
        else:
            lock.release_at = release_at
            lock.username = username
        session.flush()
        return LockRecord.from_orm_model(lock)

    def _log_lock(self, record: LockRecord, trigger: str) -> None:
        log_event(
            self.events_log_file,
            "lock",
            record.ip,
            record.username,
            "locked",
            {"lockdown_id": record.id, "release_at": record.release_at.isoformat(), "trigger": trigger},
        )
