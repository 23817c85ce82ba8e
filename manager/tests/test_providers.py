"""Tests for provider selection and resource tagging."""
import pytest

from cloudresources.errors import UnsupportedStrategy
from cloudresources.models.enums import ResourceType
from cloudresources.services.provisioning import AwsProvider, FallbackProvider, get_provider
from cloudresources.services.provisioning.fallback import FallbackPostgresProvisioner
from cloudresources.services.provisioning.postgres import AWSPostgresProvisioner
from cloudresources.services.tagging import build_default_tags, format_aws_tags

from conftest import CLUSTER_ID


@pytest.fixture
def providers(store, credential_manager):
    return AwsProvider(store, credential_manager), FallbackProvider(store)


class TestGetProvider:
    """Tests for mapping strategy identifiers to providers."""

    def test_aws(self, providers):
        aws, fallback = providers
        provider = get_provider("aws", aws, fallback)
        assert provider is aws
        assert isinstance(provider.for_kind(ResourceType.POSTGRES), AWSPostgresProvisioner)

    def test_openshift(self, providers):
        aws, fallback = providers
        provider = get_provider("openshift", aws, fallback)
        assert provider is fallback
        assert isinstance(provider.for_kind(ResourceType.POSTGRES), FallbackPostgresProvisioner)

    def test_unknown_strategy(self, providers):
        with pytest.raises(UnsupportedStrategy) as exc_info:
            get_provider("gcp", *providers)
        assert exc_info.value.message == "deployment strategy 'gcp' is not supported"

    def test_aws_serves_every_kind(self, providers):
        aws, _ = providers
        assert all(aws.for_kind(kind).provider_name for kind in ResourceType)

    @pytest.mark.parametrize("kind", [ResourceType.POSTGRES_SNAPSHOT, ResourceType.REDIS_SNAPSHOT])
    def test_fallback_has_no_snapshots(self, providers, kind):
        _, fallback = providers
        with pytest.raises(UnsupportedStrategy):
            fallback.for_kind(kind)


class TestTags:
    """Tests for default resource tags."""

    def test_default_tags(self, make_record):
        tags = build_default_tags(make_record(deployment_type="workshop"), CLUSTER_ID, "integreatly.org/")

        assert tags == {
            "integreatly.org/clusterID": CLUSTER_ID,
            "integreatly.org/resource-type": "workshop",
            "integreatly.org/resource-name": "example",
            "integreatly.org/product-name": "test-product",
        }

    def test_product_name_omitted_without_label(self, make_record):
        tags = build_default_tags(make_record(labels={}), CLUSTER_ID, "acme/")
        assert "acme/product-name" not in tags

    def test_overlong_value_is_rejected(self, make_record):
        with pytest.raises(ValueError):
            build_default_tags(make_record(name="x" * 300), CLUSTER_ID, "acme/")

    def test_aws_format(self):
        assert format_aws_tags({"a": "1"}) == [{"Key": "a", "Value": "1"}]
