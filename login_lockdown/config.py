from dataclasses import dataclass
import json
import os

from login_lockdown.models import LockdownSettings

CONFIG_ENV = "LOGIN_LOCKDOWN_CONFIG"


def _bool(env_val: str, default: bool) -> bool:
    if env_val is None:
        return default
    return env_val.lower() in {"1", "true", "yes", "on"}


@dataclass
class Config:
    db_url: str = "sqlite:///./lockdown.db"
    db_timeout_s: int = 30
    events_log_file: str = "lockdown_events.log"

    max_login_retries: int = 3
    retries_within_s: int = 300
    lockout_length_s: int = 3600
    window_mode: str = "sliding"
    lockout_invalid_usernames: bool = False

    def settings(self) -> LockdownSettings:
        return LockdownSettings(
            max_retries=self.max_login_retries,
            observation_window_s=self.retries_within_s,
            lockout_duration_s=self.lockout_length_s,
            window_mode=self.window_mode,
            lockout_invalid_usernames=self.lockout_invalid_usernames,
        )


def load_config(path: str | None = None) -> Config:
    cfg = Config()
    path = path or os.environ.get(CONFIG_ENV)
    if path and os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        for k, v in data.items():
            if hasattr(cfg, k):
                setattr(cfg, k, v)

    cfg.db_url = os.environ.get("LOGIN_LOCKDOWN_DB_URL", cfg.db_url)
    cfg.events_log_file = os.environ.get("LOGIN_LOCKDOWN_EVENTS_LOG", cfg.events_log_file)
    cfg.lockout_invalid_usernames = _bool(
        os.environ.get("LOGIN_LOCKDOWN_LOCKOUT_INVALID_USERNAMES"), cfg.lockout_invalid_usernames
    )
    return cfg


class ConfigSettingsProvider:
    """Read-only view of the lockdown settings held by a :class:`Config`.

    Settings are re-read on every call so a ledger picks up changes made to
    the underlying config object between operations.
    """

    def __init__(self, cfg: Config):
        self.cfg = cfg

    def get_settings(self) -> LockdownSettings:
        return self.cfg.settings()

    def update_setting(self, name: str, value: str) -> None:
        # Settings are owned by whoever writes the config file.
        raise NotImplementedError("This command has not been implemented yet.")
