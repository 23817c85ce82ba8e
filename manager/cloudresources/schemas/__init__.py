"""Pydantic schemas for decoded strategy documents."""

from cloudresources.schemas.strategy import (
    DeploymentStrategyMapping,
    ElastiCacheCreateConfig,
    ElastiCacheDeleteConfig,
    FallbackStrategy,
    RDSCreateConfig,
    RDSDeleteConfig,
    S3BucketConfig,
    StrategyConfig,
)

__all__ = [
    "DeploymentStrategyMapping",
    "ElastiCacheCreateConfig",
    "ElastiCacheDeleteConfig",
    "FallbackStrategy",
    "RDSCreateConfig",
    "RDSDeleteConfig",
    "S3BucketConfig",
    "StrategyConfig",
]
