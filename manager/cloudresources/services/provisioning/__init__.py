"""
Provisioning services for cloud and in-cluster resources.

Supported providers:
- AWS (RDS, ElastiCache, S3, RDS and ElastiCache snapshots)
- In-cluster fallback (Deployment backed postgres and redis, placeholder blobstorage)
"""

from .base import (
    AWSProvisioner,
    BlobStorageDeploymentDetails,
    PostgresDeploymentDetails,
    RedisDeploymentDetails,
)
from .providers import AwsProvider, FallbackProvider, Provider, get_provider

__all__ = [
    'AWSProvisioner',
    'BlobStorageDeploymentDetails',
    'PostgresDeploymentDetails',
    'RedisDeploymentDetails',
    'AwsProvider',
    'FallbackProvider',
    'Provider',
    'get_provider',
]
