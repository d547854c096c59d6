import gc
import os
import tempfile
import time

import pytest

from login_lockdown import db
from login_lockdown.config import Config, ConfigSettingsProvider
from login_lockdown.ledger import LockdownLedger

KNOWN_USERS = {"admin", "editor"}


@pytest.fixture
def temp_db():
    """Create a temporary database for testing"""
    fd, temp_path = tempfile.mkstemp(suffix='.db')
    os.close(fd)

    try:
        db.init_db(f"sqlite:///{temp_path}")
        yield temp_path
    finally:
        # Dispose of SQLAlchemy engine to close all connections
        if db.engine is not None:
            db.engine.dispose()
        gc.collect()

        # On Windows, give the OS time to release file handles
        if os.name == 'nt':
            time.sleep(0.1)

        if os.path.exists(temp_path):
            try:
                os.remove(temp_path)
            except (PermissionError, OSError):
                pass


@pytest.fixture
def cfg():
    """Threshold 3, 40 minute lockout, 5 minute sliding window, no event log"""
    return Config(
        max_login_retries=3,
        retries_within_s=300,
        lockout_length_s=2400,
        events_log_file="",
    )


@pytest.fixture
def ledger(temp_db, cfg):
    return LockdownLedger(ConfigSettingsProvider(cfg), username_validator=lambda u: u in KNOWN_USERS)
