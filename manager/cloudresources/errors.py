"""
Exception types raised by the reconciliation engine.

Every error carries a short human message which is also written to the
status of the intent record being reconciled, so the message raised and
the message shown to users always agree.
"""

from typing import Optional


class CloudResourceError(Exception):
    """
    Base exception for reconciliation errors.

    Attributes:
        message: Error message
        resource_id: Resource identifier if applicable
        original_error: Original exception if wrapped
    """

    def __init__(
        self,
        message: str,
        resource_id: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        self.message = message
        self.resource_id = resource_id
        self.original_error = original_error
        super().__init__(self.message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.resource_id:
            parts.append(f"Resource: {self.resource_id}")
        if self.original_error:
            parts.append(f"Original error: {str(self.original_error)}")
        return " | ".join(parts)


class ConfigNotFound(CloudResourceError):
    """Strategy mapping or tier configuration is missing or malformed."""


class UnsupportedStrategy(CloudResourceError):
    """Resolved strategy has no registered provider."""


class CredentialError(CloudResourceError):
    """Provider credentials could not be reconciled."""


class NetworkError(CloudResourceError):
    """Cluster network could not be located or carved up."""


class StoreError(CloudResourceError):
    """Reading or writing the control-plane store failed."""


class RetryTimeout(CloudResourceError):
    """A bounded poll ran out of time."""


class ProvisionerException(CloudResourceError):
    """
    Provider call failed.

    Attributes:
        provider: Provider name where error occurred
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        resource_id: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        self.provider = provider
        super().__init__(message, resource_id=resource_id, original_error=original_error)

    def __str__(self) -> str:
        parts = [self.message]
        if self.provider:
            parts.append(f"Provider: {self.provider}")
        if self.resource_id:
            parts.append(f"Resource: {self.resource_id}")
        if self.original_error:
            parts.append(f"Original error: {str(self.original_error)}")
        return " | ".join(parts)
