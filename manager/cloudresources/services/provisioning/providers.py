"""
Provider variants.

A provider bundles one provisioner per resource kind it can serve. The set of
providers is closed: ``get_provider`` maps a resolved strategy identifier to
either the AWS provider or the in-cluster fallback provider.
"""

import logging
from typing import Dict, Optional

from cloudresources.errors import UnsupportedStrategy
from cloudresources.models.enums import DeploymentStrategy, ResourceType
from cloudresources.services.network import DEFAULT_ORGANIZATION_TAG
from cloudresources.utils.retry import RetryPolicy

from .blobstorage import AWSBlobStorageProvisioner
from .fallback import FallbackBlobStorageProvisioner, FallbackPostgresProvisioner, FallbackRedisProvisioner
from .postgres import AWSPostgresProvisioner
from .redis import AWSRedisProvisioner
from .snapshots import AWSPostgresSnapshotProvisioner, AWSRedisSnapshotProvisioner

logger = logging.getLogger(__name__)


class Provider:
    """Per-kind provisioners for one deployment strategy."""

    strategy = ""

    def __init__(self, provisioners: Dict[ResourceType, object]):
        self.provisioners = provisioners

    def for_kind(self, kind: ResourceType):
        """
        Provisioner serving a resource kind.

        Raises:
            UnsupportedStrategy: If this provider has no provisioner for the kind
        """
        provisioner = self.provisioners.get(kind)
        if provisioner is None:
            raise UnsupportedStrategy(
                f"deployment strategy '{self.strategy}' is not supported for resource type {kind.value}"
            )
        return provisioner


class AwsProvider(Provider):
    """RDS, ElastiCache, S3 and snapshots of the first two."""

    strategy = DeploymentStrategy.AWS.value

    def __init__(self, store, credential_manager,
                 organization_tag: str = DEFAULT_ORGANIZATION_TAG,
                 retry_policy: Optional[RetryPolicy] = None):
        args = (store, credential_manager, organization_tag, retry_policy)
        super().__init__({
            ResourceType.POSTGRES: AWSPostgresProvisioner(*args),
            ResourceType.REDIS: AWSRedisProvisioner(*args),
            ResourceType.BLOBSTORAGE: AWSBlobStorageProvisioner(*args),
            ResourceType.POSTGRES_SNAPSHOT: AWSPostgresSnapshotProvisioner(*args),
            ResourceType.REDIS_SNAPSHOT: AWSRedisSnapshotProvisioner(*args),
        })


class FallbackProvider(Provider):
    """In-cluster equivalents, no snapshot support."""

    strategy = DeploymentStrategy.OPENSHIFT.value

    def __init__(self, store):
        super().__init__({
            ResourceType.POSTGRES: FallbackPostgresProvisioner(store),
            ResourceType.REDIS: FallbackRedisProvisioner(store),
            ResourceType.BLOBSTORAGE: FallbackBlobStorageProvisioner(store),
        })


def get_provider(strategy: str, aws: AwsProvider, fallback: FallbackProvider) -> Provider:
    """
    Select the provider for a resolved strategy identifier.

    Args:
        strategy: Strategy identifier, e.g. "aws" or "openshift"
        aws: AWS provider instance
        fallback: In-cluster provider instance

    Returns:
        The matching provider

    Raises:
        UnsupportedStrategy: If no provider serves the strategy
    """
    if strategy == DeploymentStrategy.AWS.value:
        return aws
    elif strategy == DeploymentStrategy.OPENSHIFT.value:
        return fallback
    else:
        raise UnsupportedStrategy(f"deployment strategy '{strategy}' is not supported")
