"""
Shared pieces of the AWS provisioners.

Each provisioner converges one backing resource per intent record. Its
create and delete operations are re-entrant: they list what already exists,
locate the resource by its deterministic name, and either issue the single
next provider call or report that the resource is still converging. They
never block waiting for the provider to finish.

Operations return ``(result, message)`` pairs. A ``None`` result means "not
ready yet"; the message is written to the record status either way.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from cloudresources.errors import ConfigNotFound, ProvisionerException
from cloudresources.models.records import IntentRecord
from cloudresources.services.network import DEFAULT_ORGANIZATION_TAG
from cloudresources.utils.naming import (
    DEFAULT_AWS_IDENTIFIER_LENGTH,
    build_infra_name_from_record,
    build_timestamped_infra_name,
)
from cloudresources.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_FINALIZER = "finalizers.cloud-resources-operator.integreatly.org"
AVAILABLE_STATUS = "available"

M = TypeVar("M")


def is_client_error(error: Exception, *codes: str) -> bool:
    """True when error is a botocore ClientError with one of the given codes."""
    if not isinstance(error, ClientError):
        return False
    return error.response.get("Error", {}).get("Code") in codes


def is_retryable_aws_error(error: Exception) -> bool:
    return isinstance(error, (BotoCoreError, ClientError))


@dataclass
class PostgresDeploymentDetails:
    username: str
    password: str
    host: str
    database: str
    port: int

    def data(self) -> Dict[str, str]:
        return {
            "username": self.username,
            "password": self.password,
            "host": self.host,
            "database": self.database,
            "port": str(self.port),
        }


@dataclass
class RedisDeploymentDetails:
    uri: str
    port: int

    def data(self) -> Dict[str, str]:
        return {"uri": self.uri, "port": str(self.port)}


@dataclass
class BlobStorageDeploymentDetails:
    bucket_name: str
    credential_key_id: str
    credential_secret_key: str
    bucket_region: str

    def data(self) -> Dict[str, str]:
        return {
            "bucketName": self.bucket_name,
            "credentialKeyID": self.credential_key_id,
            "credentialSecretKey": self.credential_secret_key,
            "bucketRegion": self.bucket_region,
        }


class AWSProvisioner:
    """
    Base class for the per-kind AWS provisioners.

    Attributes:
        provider_name: Name written to the record status
    """

    provider_name = "aws"

    def __init__(self, store, credential_manager,
                 organization_tag: str = DEFAULT_ORGANIZATION_TAG,
                 retry_policy: Optional[RetryPolicy] = None):
        """
        Initialize provisioner.

        Args:
            store: Control-plane store
            credential_manager: CredentialRequestManager or STSCredentialManager
            organization_tag: Prefix of tag keys set on cloud resources
            retry_policy: Poll policy for list calls made after a credential handshake
        """
        self.store = store
        self.credential_manager = credential_manager
        self.organization_tag = organization_tag
        self.retry_policy = retry_policy or RetryPolicy(retryable=is_retryable_aws_error)

    def _session(self, record: IntentRecord, region: str):
        """boto3 session opened with the operator's provider credentials."""
        credentials = self.credential_manager.reconcile_provider_credentials(record.namespace)
        return credentials.session(region)

    def _list(self, func: Callable[..., Dict[str, Any]], key: str, description: str) -> List[Dict[str, Any]]:
        """Run a describe call under the retry policy and return one of its lists."""
        response = self.retry_policy.call(func, description=description)
        return response.get(key, [])

    def _decode(self, model: Type[M], raw: Optional[Dict[str, Any]], description: str) -> M:
        try:
            return model.model_validate(raw or {})
        except ValidationError as e:
            raise ConfigNotFound(f"failed to unmarshal aws {description} configuration", original_error=e)

    def _error(self, message: str, resource_id: Optional[str] = None,
               original_error: Optional[Exception] = None) -> ProvisionerException:
        logger.error(f"{self.provider_name}: {message}")
        return ProvisionerException(
            message,
            provider=self.provider_name,
            resource_id=resource_id,
            original_error=original_error,
        )

    @staticmethod
    def resource_name(cluster_id: str, record: IntentRecord) -> str:
        return build_infra_name_from_record(
            cluster_id, record.namespace, record.name, DEFAULT_AWS_IDENTIFIER_LENGTH
        )

    def timestamped_name(self, cluster_id: str, record: IntentRecord) -> str:
        """Deterministic snapshot name for a record, anchored on its creation time."""
        if record.creation_timestamp is None:
            raise self._error("record has no creation timestamp", resource_id=record.name)
        return build_timestamped_infra_name(
            cluster_id, record.namespace, record.name, record.creation_timestamp, DEFAULT_AWS_IDENTIFIER_LENGTH
        )
