import json
from unittest.mock import patch

import pytest

from login_lockdown import cli, db
from login_lockdown.errors import PersistenceError
from login_lockdown.ledger import LockdownLedger


@pytest.fixture
def cli_db(tmp_path, monkeypatch):
    """Point the CLI at a temporary database and event log"""
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.delenv("LOGIN_LOCKDOWN_CONFIG", raising=False)
    monkeypatch.delenv("LOGIN_LOCKDOWN_LOCKOUT_INVALID_USERNAMES", raising=False)
    monkeypatch.setenv("LOGIN_LOCKDOWN_DB_URL", url)
    monkeypatch.setenv("LOGIN_LOCKDOWN_EVENTS_LOG", str(tmp_path / "events.log"))

    db.init_db(url)
    db.add_account("admin")
    yield tmp_path

    if db.engine is not None:
        db.engine.dispose()


class TestLockCommand:
    """Test lock / lockdown"""

    def test_lock_known_user(self, cli_db, capsys):
        assert cli.main(["lockdown", "127.0.0.1", "admin"]) == 0
        assert capsys.readouterr().out == "Success: IP address 127.0.0.1 locked down.\n"

    def test_lock_alias(self, cli_db, capsys):
        assert cli.main(["lock", "1.2.3.4", "admin"]) == 0
        assert "locked down" in capsys.readouterr().out

    def test_lock_invalid_username(self, cli_db, capsys):
        assert cli.main(["lock", "1.2.3.4", "mallory"]) == 1
        assert capsys.readouterr().err == "Error: Invalid username.\n"

    def test_lock_writes_event_log(self, cli_db):
        cli.main(["lock", "1.2.3.4", "admin"])
        lines = (cli_db / "events.log").read_text(encoding="utf-8").splitlines()
        assert json.loads(lines[-1])["action"] == "lock"


class TestIsLockedCommand:
    """is-locked exits 0 when locked, 1 when not and 2 on store errors"""

    def test_locked_exits_zero(self, cli_db, capsys):
        cli.main(["lock", "1.2.3.4", "admin"])
        capsys.readouterr()

        assert cli.main(["is-locked", "1.2.3.4"]) == 0
        assert capsys.readouterr().out == "IP address 1.2.3.4 is locked down.\n"

    def test_not_locked_exits_one(self, cli_db, capsys):
        assert cli.main(["is-locked-down", "1.2.3.4"]) == 1
        assert capsys.readouterr().err == "IP address 1.2.3.4 is not locked down.\n"

    def test_store_failure_exits_two(self, cli_db, capsys):
        """A broken store must not read as "not locked" in shell conditionals"""
        with patch.object(LockdownLedger, "get_active", side_effect=PersistenceError("database is locked")):
            assert cli.main(["is-locked", "1.2.3.4"]) == 2
        assert capsys.readouterr().err == "Error: database is locked\n"


class TestListCommand:
    """Test list output formats"""

    def test_list_table(self, cli_db, capsys):
        cli.main(["lock", "1.2.3.4", "admin"])
        capsys.readouterr()

        assert cli.main(["list"]) == 0
        out = capsys.readouterr().out
        assert "| lockdown_ID | minutes_left | lockdown_IP |" in out
        assert "| 1.2.3.4     |" in out

    def test_list_json(self, cli_db, capsys):
        with patch('time.time') as mock_time:
            mock_time.return_value = 1_700_000_000.0
            cli.main(["lock", "1.2.3.4", "admin"])
            capsys.readouterr()

            mock_time.return_value = 1_700_000_000.0 + 180
            assert cli.main(["list", "--format", "json"]) == 0
        items = json.loads(capsys.readouterr().out)
        assert items == [{"lockdown_ID": 1, "minutes_left": 57, "lockdown_IP": "1.2.3.4"}]

    def test_list_empty_csv(self, cli_db, capsys):
        assert cli.main(["list", "--format=csv"]) == 0
        assert capsys.readouterr().out == "lockdown_ID,minutes_left,lockdown_IP\n"

    def test_list_rejects_unknown_format(self, cli_db):
        with pytest.raises(SystemExit):
            cli.main(["list", "--format", "xml"])


class TestReleaseCommand:
    """Test release"""

    def test_release_locked(self, cli_db, capsys):
        cli.main(["lock", "127.0.0.1", "admin"])
        capsys.readouterr()

        assert cli.main(["release", "127.0.0.1"]) == 0
        assert capsys.readouterr().out == "Success: IP address 127.0.0.1 released.\n"
        assert cli.main(["is-locked", "127.0.0.1"]) == 1

    def test_release_not_locked(self, cli_db, capsys):
        assert cli.main(["release", "127.0.0.1"]) == 1
        assert capsys.readouterr().err == "Error: IP address 127.0.0.1 is not locked down.\n"

    def test_release_store_failure(self, cli_db, capsys):
        with patch.object(LockdownLedger, "release", side_effect=PersistenceError("disk I/O error")):
            assert cli.main(["release", "127.0.0.1"]) == 1
        assert capsys.readouterr().err == "Error: Could not release IP address 127.0.0.1.\n"


class TestOtherCommands:
    """Test record-failure, purge, update-setting and config handling"""

    def test_record_failure_locks_at_threshold(self, cli_db, capsys):
        assert cli.main(["record-failure", "1.2.3.4", "admin"]) == 0
        assert cli.main(["record-failure", "1.2.3.4", "admin"]) == 0
        out = capsys.readouterr().out
        assert out.count("Success: Failed login recorded for IP address 1.2.3.4.") == 2

        assert cli.main(["record-failure", "1.2.3.4", "admin"]) == 0
        assert capsys.readouterr().out == "Success: IP address 1.2.3.4 locked down.\n"
        assert cli.main(["is-locked", "1.2.3.4"]) == 0

    def test_record_failure_invalid_username(self, cli_db, capsys):
        assert cli.main(["record-failure", "1.2.3.4", ""]) == 1
        assert capsys.readouterr().err == "Error: Invalid username.\n"

    def test_purge(self, cli_db, capsys):
        assert cli.main(["purge"]) == 0
        assert capsys.readouterr().out == "Success: Removed 0 expired failed login(s).\n"

    def test_update_setting_not_implemented(self, cli_db, capsys):
        assert cli.main(["update-setting", "max_login_retries", "5"]) == 1
        assert capsys.readouterr().err == "Error: This command has not been implemented yet.\n"

    def test_config_file_sets_threshold(self, cli_db, capsys):
        path = cli_db / "config.json"
        path.write_text(json.dumps({"max_login_retries": 1}))

        assert cli.main(["--config", str(path), "record-failure", "1.2.3.4", "admin"]) == 0
        assert capsys.readouterr().out == "Success: IP address 1.2.3.4 locked down.\n"

    def test_invalid_config_reports_error(self, cli_db, capsys):
        path = cli_db / "config.json"
        path.write_text(json.dumps({"max_login_retries": 0}))

        assert cli.main(["--config", str(path), "record-failure", "1.2.3.4", "admin"]) == 1
        assert capsys.readouterr().err.startswith("Error: Invalid lockdown settings")

    def test_db_url_option(self, cli_db, capsys):
        other = f"sqlite:///{cli_db / 'other.db'}"
        assert cli.main(["--db-url", other, "lock", "1.2.3.4", "admin"]) == 1
        assert capsys.readouterr().err == "Error: Invalid username.\n"
