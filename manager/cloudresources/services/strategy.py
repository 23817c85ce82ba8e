"""
Strategy resolution.

A strategy is resolved in two lookups. The deployment-type mapping
(``cloud-resource-config``) names the provider per resource kind, then the
provider's strategies config map holds one JSON document per kind keyed by
tier. Both lookups are pure reads; failing either means the installation is
misconfigured and is reported as ``ConfigNotFound``.
"""

import json
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from pydantic import ValidationError

from cloudresources.errors import ConfigNotFound, StoreError
from cloudresources.models.enums import DeploymentStrategy, ResourceType
from cloudresources.schemas.strategy import DeploymentStrategyMapping, StrategyConfig

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_CONFIG_MAP = "cloud-resource-config"
DEFAULT_CONFIG_NAMESPACE = "kube-system"
DEFAULT_STRATEGY_CONFIG_MAPS = {
    DeploymentStrategy.AWS.value: "cloud-resources-aws-strategies",
    DeploymentStrategy.OPENSHIFT.value: "cloud-resources-openshift-strategies",
}
DEFAULT_REGION = "eu-west-1"


@dataclass
class ResolvedStrategy:
    """Provider identifier plus the tier configuration to hand it."""
    provider: str
    config: StrategyConfig


class StrategyResolver:
    """Reads tier to strategy mappings from config maps."""

    def __init__(
        self,
        store,
        provider_config_map: str = DEFAULT_PROVIDER_CONFIG_MAP,
        config_namespace: str = DEFAULT_CONFIG_NAMESPACE,
        strategy_config_maps: Optional[Dict[str, str]] = None,
        default_region: str = DEFAULT_REGION,
    ):
        self.store = store
        self.provider_config_map = provider_config_map
        self.config_namespace = config_namespace
        self.strategy_config_maps = strategy_config_maps or dict(DEFAULT_STRATEGY_CONFIG_MAPS)
        self.default_region = default_region

    def _read_config_map(self, name: str) -> Dict[str, str]:
        try:
            data = self.store.get_config_map(self.config_namespace, name)
        except StoreError as e:
            raise ConfigNotFound(
                f"failed to read config map {name} in namespace {self.config_namespace}", original_error=e
            )
        if data is None:
            raise ConfigNotFound(f"config map {name} not found in namespace {self.config_namespace}")
        return data

    def get_strategy_mapping(self, deployment_type: str) -> DeploymentStrategyMapping:
        """High-level provider mapping for a deployment type."""
        data = self._read_config_map(self.provider_config_map)
        raw = data.get(deployment_type)
        if not raw:
            raise ConfigNotFound(f"deployment type {deployment_type} is not defined in {self.provider_config_map}")
        try:
            return DeploymentStrategyMapping.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            raise ConfigNotFound(f"failed to unmarshal config for deployment type {deployment_type}", original_error=e)

    def resolve_strategy(self, kind: ResourceType, deployment_type: str) -> str:
        """Provider identifier configured for a resource kind."""
        mapping = self.get_strategy_mapping(deployment_type)
        strategy = mapping.for_kind(kind.owner_type.value)
        if not strategy:
            raise ConfigNotFound(
                f"no strategy for resource type {kind.owner_type.value} in deployment type {deployment_type}"
            )
        return strategy

    def read_storage_strategy(self, strategy: str, kind: ResourceType, tier: str) -> StrategyConfig:
        """
        Tier configuration for a resource kind under one provider.

        Raises:
            ConfigNotFound: If the config map, the kind or the tier is missing,
                or the document cannot be decoded
        """
        cm_name = self.strategy_config_maps.get(strategy)
        if cm_name is None:
            raise ConfigNotFound(f"no strategy config map registered for {strategy}")

        data = self._read_config_map(cm_name)
        owner = kind.owner_type.value
        raw = data.get(owner)
        if not raw:
            raise ConfigNotFound(f"{strategy} strategy for resource type {owner} is not defined")

        try:
            tiers = json.loads(raw)
        except ValueError as e:
            raise ConfigNotFound(f"failed to unmarshal strategy mapping for resource type {owner}", original_error=e)
        if not isinstance(tiers, dict) or tier not in tiers:
            raise ConfigNotFound(f"tier {tier} is not defined for resource type {owner} in {cm_name}")

        try:
            return StrategyConfig.model_validate(tiers[tier] or {})
        except ValidationError as e:
            raise ConfigNotFound(f"failed to unmarshal {owner} strategy for tier {tier}", original_error=e)

    def resolve_region(self, strategy_config: StrategyConfig) -> str:
        """Region from the tier, the cluster, or the default, in that order."""
        if strategy_config.region:
            return strategy_config.region
        region = self.store.get_cluster_region()
        if region:
            logger.debug(f"region not set in deployment strategy configuration, using cluster region {region}")
            return region
        logger.debug(f"region not set in deployment strategy configuration, using default region {self.default_region}")
        return self.default_region

    def resolve(self, kind: ResourceType, tier: str, deployment_type: str,
                strategy: Optional[str] = None) -> ResolvedStrategy:
        """
        Resolve the provider and tier configuration for a record.

        Args:
            kind: Resource kind
            tier: Tier name
            deployment_type: Deployment type used for the provider mapping
            strategy: Already active strategy, takes precedence over the mapping

        Returns:
            ResolvedStrategy with the region filled in
        """
        provider = strategy or self.resolve_strategy(kind, deployment_type)
        strategy_config = self.read_storage_strategy(provider, kind, tier)
        if provider == DeploymentStrategy.AWS.value:
            strategy_config.region = self.resolve_region(strategy_config)
        return ResolvedStrategy(provider=provider, config=strategy_config)
