"""
Error taxonomy for smart account operations
"""

from typing import Optional


class SmartAccountError(Exception):
    """Base class for every error raised by this library"""
    pass


class ConfigurationError(SmartAccountError):
    """Missing or inconsistent configuration; fatal, never retried"""
    pass


class MissingFieldError(SmartAccountError):
    """Transaction request is incomplete; raised before any network call"""
    pass


class UnsupportedOperationError(SmartAccountError):
    pass


class AccountNotDeployedError(SmartAccountError):
    """Internal: the account has no code yet. Never surfaced to callers."""
    pass


class TransportError(SmartAccountError):
    """Opaque failure from the HTTP / JSON-RPC layer"""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class BundlerRejection(SmartAccountError):
    """The bundler refused to include the UserOperation (FailedOp)"""

    def __init__(self, reason: str, paymaster_address: str):
        super().__init__(
            f"The bundler has failed to include UserOperation in a batch: {reason} "
            f"(paymaster address: {paymaster_address})"
        )
        self.reason = reason
        self.paymaster_address = paymaster_address
