"""Tests for cloudresources.services.strategy."""
import json

import pytest

from cloudresources.errors import ConfigNotFound, StoreError
from cloudresources.models.enums import ResourceType
from cloudresources.services.strategy import StrategyResolver

PROVIDER_CONFIG = {
    "managed": json.dumps({"blobstorage": "aws", "postgres": "aws", "redis": "aws"}),
    "workshop": json.dumps({"blobstorage": "openshift", "postgres": "openshift", "redis": "openshift"}),
}

AWS_STRATEGIES = {
    "postgres": json.dumps({
        "production": {"region": "", "createStrategy": {"DBInstanceClass": "db.m5.large"}, "deleteStrategy": {}},
        "development": {"region": "us-east-2", "createStrategy": {}, "deleteStrategy": {}},
    }),
    "redis": json.dumps({"production": {"region": "", "createStrategy": {}, "deleteStrategy": {}}}),
}


@pytest.fixture
def resolver(store):
    config_maps = {
        "cloud-resource-config": PROVIDER_CONFIG,
        "cloud-resources-aws-strategies": AWS_STRATEGIES,
        "cloud-resources-openshift-strategies": {"postgres": json.dumps({"production": {}})},
    }
    store.get_config_map.side_effect = lambda namespace, name: config_maps.get(name)
    return StrategyResolver(store)


class TestResolveStrategy:
    """Tests for the deployment type mapping."""

    def test_managed_type_maps_to_aws(self, resolver):
        assert resolver.resolve_strategy(ResourceType.POSTGRES, "managed") == "aws"

    def test_workshop_type_maps_to_openshift(self, resolver):
        assert resolver.resolve_strategy(ResourceType.REDIS, "workshop") == "openshift"

    def test_snapshot_kind_uses_owner_mapping(self, resolver):
        assert resolver.resolve_strategy(ResourceType.POSTGRES_SNAPSHOT, "managed") == "aws"

    def test_unknown_deployment_type(self, resolver):
        with pytest.raises(ConfigNotFound):
            resolver.resolve_strategy(ResourceType.POSTGRES, "unknown")

    def test_missing_config_map(self, store):
        store.get_config_map.return_value = None
        with pytest.raises(ConfigNotFound):
            StrategyResolver(store).resolve_strategy(ResourceType.POSTGRES, "managed")

    def test_store_failure_is_reported_as_config_not_found(self, store):
        store.get_config_map.side_effect = StoreError("forbidden")
        with pytest.raises(ConfigNotFound) as exc_info:
            StrategyResolver(store).resolve_strategy(ResourceType.POSTGRES, "managed")
        assert isinstance(exc_info.value.original_error, StoreError)

    def test_malformed_mapping(self, store):
        store.get_config_map.return_value = {"managed": "{not json"}
        with pytest.raises(ConfigNotFound):
            StrategyResolver(store).resolve_strategy(ResourceType.POSTGRES, "managed")


class TestReadStorageStrategy:
    """Tests for the per-tier lookup."""

    def test_returns_tier_config(self, resolver):
        config = resolver.read_storage_strategy("aws", ResourceType.POSTGRES, "production")
        assert config.create_strategy == {"DBInstanceClass": "db.m5.large"}
        assert config.delete_strategy == {}

    def test_unknown_tier(self, resolver):
        with pytest.raises(ConfigNotFound) as exc_info:
            resolver.read_storage_strategy("aws", ResourceType.POSTGRES, "enterprise")
        assert "enterprise" in exc_info.value.message

    def test_kind_missing_from_strategies(self, resolver):
        with pytest.raises(ConfigNotFound):
            resolver.read_storage_strategy("aws", ResourceType.BLOBSTORAGE, "production")

    def test_unregistered_strategy(self, resolver):
        with pytest.raises(ConfigNotFound):
            resolver.read_storage_strategy("gcp", ResourceType.POSTGRES, "production")

    def test_malformed_tier_document(self, store):
        store.get_config_map.return_value = {"postgres": "[1, 2"}
        with pytest.raises(ConfigNotFound):
            StrategyResolver(store).read_storage_strategy("aws", ResourceType.POSTGRES, "production")


class TestResolve:
    """Tests for full resolution including region defaults."""

    def test_explicit_region_is_kept(self, resolver):
        resolved = resolver.resolve(ResourceType.POSTGRES, "development", "managed")
        assert resolved.provider == "aws"
        assert resolved.config.region == "us-east-2"

    def test_empty_region_uses_cluster_region(self, resolver, store):
        store.get_cluster_region.return_value = "ap-south-1"
        resolved = resolver.resolve(ResourceType.POSTGRES, "production", "managed")
        assert resolved.config.region == "ap-south-1"

    def test_empty_region_falls_back_to_default(self, resolver):
        resolved = resolver.resolve(ResourceType.POSTGRES, "production", "managed")
        assert resolved.config.region == "eu-west-1"

    def test_active_strategy_overrides_mapping(self, resolver):
        resolved = resolver.resolve(ResourceType.POSTGRES, "production", "workshop", strategy="aws")
        assert resolved.provider == "aws"

    def test_openshift_strategy_has_no_region(self, resolver, store):
        resolved = resolver.resolve(ResourceType.POSTGRES, "production", "workshop")
        assert resolved.provider == "openshift"
        assert resolved.config.region == ""
        store.get_cluster_region.assert_not_called()
