from typing import Sequence


class SniperError(Exception):
    """Base class for every error raised by the sniper core"""
    confirm_ms = None   # Set when the error ended a timed confirmation wait

class TransientNetworkError(SniperError):
    """Raised when a stream, quote or submit call fails and may be retried"""
    pass

class TransactionError(SniperError):
    """Raised when a transaction cannot be built, signed or confirmed"""
    pass

class InsufficientBalanceError(SniperError):
    """Raised when the wallet holds nothing to sell for a mint"""
    pass

class MalformedEventError(SniperError):
    """Raised when a stream envelope lacks the fields the detector needs"""
    pass

class DuplicatePositionError(SniperError):
    """Raised when a second position is opened for a mint that already has one"""
    pass

class ConfigValidationError(SniperError):
    """Raised at startup when configuration values are out of range"""

    def __init__(self, errors: Sequence[str]):
        self.errors = list(errors)
        super().__init__("Configuration validation failed:\n" + "\n".join(self.errors))

class RiskBlockedError(SniperError):
    """A denied admission. Not a fault, carries the reasons for the denial"""

    def __init__(self, mint: str, reasons: Sequence[str]):
        self.mint = mint
        self.reasons = list(reasons)
        super().__init__(f"Trade blocked for {mint}: {'; '.join(self.reasons)}")
