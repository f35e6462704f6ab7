"""
Slashwatch Exceptions

Custom exception classes for the slashing monitor.
"""


class SlashWatchException(Exception):
    """Base exception for slashwatch."""
    pass


class ConfigurationError(SlashWatchException):
    """Configuration error."""
    pass


class RPCError(SlashWatchException):
    """Remote procedure call failed."""
    pass


class RPCTransportError(RPCError):
    """No configured endpoint could be reached."""

    def __init__(self, method: str, errors: list):
        self.method = method
        self.errors = errors
        details = "; ".join(errors) if errors else "no endpoints configured"
        super().__init__(f"{method} failed on every endpoint: {details}")


class RPCResponseError(RPCError):
    """Endpoint answered with a JSON-RPC error object."""

    def __init__(self, method: str, code: int, message: str, data=None):
        self.method = method
        self.code = code
        self.data = data
        super().__init__(f"{method} returned error {code}: {message}")


class CallError(SlashWatchException):
    """A single call inside a batch did not produce a value."""

    def __init__(self, index: int, function_name: str, message: str):
        self.index = index
        self.function_name = function_name
        super().__init__(f"Call {index} ({function_name}) {message}")


class CallFailedError(CallError):
    """The call reverted on-chain."""

    def __init__(self, index: int, function_name: str):
        super().__init__(index, function_name, "reverted")


class CallDecodeError(CallError):
    """The call succeeded but its return data could not be decoded."""

    def __init__(self, index: int, function_name: str, reason: str):
        self.reason = reason
        super().__init__(index, function_name, f"could not be decoded: {reason}")


class MonitorError(SlashWatchException):
    """Monitor lifecycle error."""
    pass


class MonitorNotInitializedError(MonitorError):
    """Raised when polling before protocol parameters were loaded."""

    def __init__(self, network: str):
        self.network = network
        super().__init__(f"Monitor for {network} polled before initialize()")
