"""Tests for cloudresources.services.provisioning.fallback."""
import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from cloudresources.errors import ProvisionerException
from cloudresources.models.enums import ResourceType
from cloudresources.schemas.strategy import StrategyConfig
from cloudresources.services.provisioning.fallback import (
    FALLBACK_FINALIZER,
    FallbackBlobStorageProvisioner,
    FallbackPostgresProvisioner,
    FallbackRedisProvisioner,
    is_deployment_available,
)


def deployment(available=None):
    conditions = None
    if available is not None:
        conditions = [client.V1DeploymentCondition(type="Available", status="True" if available else "False")]
    return client.V1Deployment(
        spec=client.V1DeploymentSpec(
            selector=client.V1LabelSelector(match_labels={"app": "example"}),
            template=client.V1PodTemplateSpec(),
        ),
        status=client.V1DeploymentStatus(conditions=conditions),
    )


@pytest.fixture
def strategy():
    return StrategyConfig(create_strategy={})


class TestIsDeploymentAvailable:
    """Tests for the readiness check."""

    def test_available_condition(self):
        assert is_deployment_available(deployment(True)) is True

    def test_unavailable_condition(self):
        assert is_deployment_available(deployment(False)) is False

    def test_no_conditions_yet(self):
        assert is_deployment_available(deployment()) is False


class TestFallbackPostgres:
    """Tests for the in-cluster postgres provisioner."""

    def test_creates_objects_and_waits(self, store, make_record, strategy):
        store.apps_v1.read_namespaced_deployment.return_value = deployment(False)
        record = make_record()

        result, msg = FallbackPostgresProvisioner(store).create(record, strategy)

        assert (result, msg) == (None, "creation in progress")
        store.add_finalizer.assert_called_once_with(record, FALLBACK_FINALIZER)
        body = store.apps_v1.create_namespaced_deployment.call_args.kwargs["body"]
        container = body.spec.template.spec.containers[0]
        assert container.image == "registry.redhat.io/rhscl/postgresql-10-rhel7"
        assert container.ports[0].container_port == 5432
        store.core_v1.create_namespaced_service.assert_called_once()
        pvc = store.core_v1.create_namespaced_persistent_volume_claim.call_args.kwargs["body"]
        assert isinstance(pvc.spec.resources, client.V1VolumeResourceRequirements)
        assert pvc.spec.resources.requests == {"storage": "1Gi"}

    def test_generates_credentials_once(self, store, make_record, strategy):
        store.apps_v1.read_namespaced_deployment.return_value = deployment(False)

        FallbackPostgresProvisioner(store).create(make_record(), strategy)

        namespace, name, data = store.upsert_secret.call_args[0]
        assert (namespace, name) == ("cro-test", "example-postgres-credentials")
        assert len(data["password"]) == 32

    def test_available_returns_service_details(self, store, make_record, strategy):
        store.apps_v1.read_namespaced_deployment.return_value = deployment(True)
        store.get_secret.return_value = {"user": "user", "password": "pw", "database": "postgres"}

        result, msg = FallbackPostgresProvisioner(store).create(make_record(), strategy)

        assert msg == "creation successful"
        assert result.data() == {
            "username": "user",
            "password": "pw",
            "host": "example.cro-test.svc.cluster.local",
            "database": "postgres",
            "port": "5432",
        }
        store.upsert_secret.assert_not_called()

    def test_existing_objects_are_tolerated(self, store, make_record, strategy):
        store.apps_v1.create_namespaced_deployment.side_effect = ApiException(status=409)
        store.core_v1.create_namespaced_service.side_effect = ApiException(status=409)
        store.apps_v1.read_namespaced_deployment.return_value = deployment(True)
        store.get_secret.return_value = {"user": "user", "password": "pw", "database": "postgres"}

        result, _ = FallbackPostgresProvisioner(store).create(make_record(), strategy)

        assert result is not None

    def test_image_and_storage_overrides(self, store, make_record):
        store.apps_v1.read_namespaced_deployment.return_value = deployment(False)
        strategy = StrategyConfig(create_strategy={"image": "postgres:13", "storageSize": "5Gi"})

        FallbackPostgresProvisioner(store).create(make_record(), strategy)

        body = store.apps_v1.create_namespaced_deployment.call_args.kwargs["body"]
        assert body.spec.template.spec.containers[0].image == "postgres:13"
        pvc = store.core_v1.create_namespaced_persistent_volume_claim.call_args.kwargs["body"]
        assert pvc.spec.resources.requests == {"storage": "5Gi"}

    def test_api_errors_are_wrapped(self, store, make_record, strategy):
        store.core_v1.create_namespaced_service.side_effect = ApiException(status=403)

        with pytest.raises(ProvisionerException):
            FallbackPostgresProvisioner(store).create(make_record(), strategy)

    def test_delete_removes_objects_then_finalizer(self, store, make_record, strategy):
        store.core_v1.delete_namespaced_service.side_effect = ApiException(status=404)
        record = make_record(deletion_requested=True)

        assert FallbackPostgresProvisioner(store).delete(record, strategy) == ""
        store.apps_v1.delete_namespaced_deployment.assert_called_once_with(name="example", namespace="cro-test")
        store.core_v1.delete_namespaced_persistent_volume_claim.assert_called_once()
        store.delete_secret.assert_called_once_with("cro-test", "example-postgres-credentials")
        store.remove_finalizer.assert_called_once_with(record, FALLBACK_FINALIZER)


class TestFallbackRedis:
    """Tests for the in-cluster redis provisioner."""

    def test_available_returns_service_uri(self, store, make_record, strategy):
        store.apps_v1.read_namespaced_deployment.return_value = deployment(True)

        result, _ = FallbackRedisProvisioner(store).create(make_record(kind=ResourceType.REDIS), strategy)

        assert result.data() == {"uri": "example.cro-test.svc.cluster.local", "port": "6379"}
        body = store.apps_v1.create_namespaced_deployment.call_args.kwargs["body"]
        assert body.spec.template.spec.containers[0].image == "registry.redhat.io/rhscl/redis-6-rhel7"
        store.upsert_secret.assert_not_called()


class TestFallbackBlobStorage:
    """Tests for the placeholder blobstorage provisioner."""

    def test_placeholders_without_existing_secret(self, store, make_record, strategy):
        result, msg = FallbackBlobStorageProvisioner(store).create(make_record(kind=ResourceType.BLOBSTORAGE), strategy)

        assert msg == "reconcile complete"
        assert set(result.data().values()) == {"REPLACE_ME"}

    def test_existing_values_are_kept(self, store, make_record, strategy):
        store.get_secret.return_value = {"bucketName": "manual-bucket", "bucketRegion": "eu-west-1"}

        result, _ = FallbackBlobStorageProvisioner(store).create(make_record(kind=ResourceType.BLOBSTORAGE), strategy)

        store.get_secret.assert_called_once_with("cro-test", "example-sec")
        assert result.data() == {
            "bucketName": "manual-bucket",
            "credentialKeyID": "REPLACE_ME",
            "credentialSecretKey": "REPLACE_ME",
            "bucketRegion": "eu-west-1",
        }

    def test_delete_removes_finalizer(self, store, make_record, strategy):
        record = make_record(kind=ResourceType.BLOBSTORAGE, deletion_requested=True)
        assert FallbackBlobStorageProvisioner(store).delete(record, strategy) == ""
        store.remove_finalizer.assert_called_once_with(record, FALLBACK_FINALIZER)
