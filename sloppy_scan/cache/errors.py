"""Exceptions for the persisted scan state (result cache and request budget).

Both stores are advisory. Callers catch these at the store boundary, log
them and carry on with empty state; they never abort a scan.
"""


class StateError(Exception):
    """Base exception for state file operations."""

    pass


class StateReadError(StateError):
    """Raised when a state file exists but cannot be read or parsed.

    Upstream code treats this as "no prior state".
    """

    pass


class StateWriteError(StateError):
    """Raised when a state file cannot be written.

    Upstream code logs the failure; the next run simply starts cold.
    """

    pass
