class LockdownError(Exception):
    """Base class for errors surfaced by the lockdown ledger."""


class InvalidUsername(LockdownError):
    def __init__(self, username: str | None = None):
        self.username = username
        super().__init__("Invalid username.")


class NotLocked(LockdownError):
    def __init__(self, ip: str):
        self.ip = ip
        super().__init__(f"IP address {ip} is not locked down.")


class PersistenceError(LockdownError):
    """The store rejected a read or write, or reported an unexpected result."""
