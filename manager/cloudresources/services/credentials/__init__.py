"""
Credentials service package for the cloud resource operator.

Provides the two interchangeable ways of obtaining AWS credentials: minted
access keys through a credential request, or a federated role identity.
"""

from typing import Optional

from cloudresources.models.enums import CredentialMode
from cloudresources.services.credentials.base import AWSCredentials, RoleCredentials, StaticCredentials
from cloudresources.services.credentials.request import CredentialRequestManager
from cloudresources.services.credentials.sts import STSCredentialManager
from cloudresources.utils.retry import RetryPolicy


def get_credential_manager(mode: str, store, retry_policy: Optional[RetryPolicy] = None):
    """
    Factory function to instantiate the configured credential manager.

    Args:
        mode: "request" or "sts"
        store: Control-plane store
        retry_policy: Poll policy for the request handshake

    Returns:
        CredentialRequestManager or STSCredentialManager

    Raises:
        ValueError: If mode is unknown
    """
    mode = CredentialMode(mode.lower())
    if mode is CredentialMode.STS:
        return STSCredentialManager(store)
    return CredentialRequestManager(store, retry_policy=retry_policy)


__all__ = [
    "AWSCredentials",
    "RoleCredentials",
    "StaticCredentials",
    "CredentialRequestManager",
    "STSCredentialManager",
    "get_credential_manager",
]
