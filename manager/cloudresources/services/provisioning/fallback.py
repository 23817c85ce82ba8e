"""
In-cluster fallback provisioners.

Postgres and redis records are served by a single-replica Deployment with a
Service and a persistent volume claim in the record's namespace. There is no
diffing: objects are created when missing and the record is ready once the
Deployment reports the Available condition. Blobstorage records get
placeholder connection keys which an administrator fills in by hand.
"""

import logging
from typing import Dict, Optional, Tuple

from kubernetes import client
from kubernetes.client.rest import ApiException
from pydantic import ValidationError

from cloudresources.errors import ConfigNotFound, ProvisionerException
from cloudresources.models.records import IntentRecord
from cloudresources.schemas.strategy import FallbackStrategy, StrategyConfig
from cloudresources.utils.security import generate_password

from .base import BlobStorageDeploymentDetails, PostgresDeploymentDetails, RedisDeploymentDetails

logger = logging.getLogger(__name__)

FALLBACK_FINALIZER = "finalizers.openshift.cloud-resources-operator.integreatly.org"

DEFAULT_STORAGE_SIZE = "1Gi"
PLACEHOLDER_VALUE = "REPLACE_ME"

POSTGRES_IMAGE = "registry.redhat.io/rhscl/postgresql-10-rhel7"
POSTGRES_PORT = 5432
POSTGRES_USER = "user"
POSTGRES_DATABASE = "postgres"

REDIS_IMAGE = "registry.redhat.io/rhscl/redis-6-rhel7"
REDIS_PORT = 6379


def service_host(name: str, namespace: str) -> str:
    return f"{name}.{namespace}.svc.cluster.local"


def is_deployment_available(deployment) -> bool:
    """True once the Deployment reports condition Available=True."""
    conditions = (deployment.status.conditions if deployment.status else None) or []
    return any(c.type == "Available" and c.status == "True" for c in conditions)


class FallbackProvisioner:
    """
    Base class for the in-cluster provisioners.

    Attributes:
        provider_name: Name written to the record status
        default_image: Container image used when the tier sets none
        port: Container and service port
    """

    provider_name = "openshift"
    default_image = ""
    port = 0
    data_path = "/data"

    def __init__(self, store):
        self.store = store
        self.core_v1 = store.core_v1
        self.apps_v1 = store.apps_v1

    def _decode(self, strategy_config: StrategyConfig) -> FallbackStrategy:
        try:
            return FallbackStrategy.model_validate(strategy_config.create_strategy or {})
        except ValidationError as e:
            raise ConfigNotFound("failed to unmarshal openshift strategy configuration", original_error=e)

    def _error(self, message: str, record: IntentRecord, original_error: Exception) -> ProvisionerException:
        logger.error(f"{self.provider_name}: {message}")
        return ProvisionerException(
            message,
            provider=self.provider_name,
            resource_id=record.name,
            original_error=original_error,
        )

    def labels(self, record: IntentRecord) -> Dict[str, str]:
        return {"app": record.name, "managed-by": "cloud-resource-operator"}

    def credentials_secret_name(self, record: IntentRecord) -> str:
        return f"{record.name}-{record.kind.value}-credentials"

    def container_env(self, credentials: Dict[str, str]):
        return []

    def _create(self, create_func, namespace: str, body, description: str) -> None:
        try:
            create_func(namespace=namespace, body=body)
            logger.info(f"Created {description} in namespace {namespace}")
        except ApiException as e:
            if e.status != 409:  # Already exists
                raise

    def _delete(self, delete_func, name: str, namespace: str) -> None:
        try:
            delete_func(name=name, namespace=namespace)
        except ApiException as e:
            if e.status != 404:
                raise

    def _reconcile_credentials(self, record: IntentRecord) -> Dict[str, str]:
        return {}

    def _create_pvc(self, record: IntentRecord, storage_size: str) -> None:
        pvc = client.V1PersistentVolumeClaim(
            metadata=client.V1ObjectMeta(
                name=record.name,
                namespace=record.namespace,
                labels=self.labels(record)
            ),
            spec=client.V1PersistentVolumeClaimSpec(
                access_modes=["ReadWriteOnce"],
                resources=client.V1VolumeResourceRequirements(requests={"storage": storage_size})
            )
        )
        self._create(self.core_v1.create_namespaced_persistent_volume_claim, record.namespace, pvc,
                     f"persistent volume claim {record.name}")

    def _create_service(self, record: IntentRecord) -> None:
        service = client.V1Service(
            metadata=client.V1ObjectMeta(
                name=record.name,
                namespace=record.namespace,
                labels=self.labels(record)
            ),
            spec=client.V1ServiceSpec(
                selector=self.labels(record),
                ports=[
                    client.V1ServicePort(
                        name=record.kind.value,
                        port=self.port,
                        target_port=self.port,
                        protocol="TCP"
                    )
                ]
            )
        )
        self._create(self.core_v1.create_namespaced_service, record.namespace, service, f"service {record.name}")

    def _create_deployment(self, record: IntentRecord, image: str, credentials: Dict[str, str]) -> None:
        labels = self.labels(record)
        container = client.V1Container(
            name=record.kind.value,
            image=image,
            ports=[client.V1ContainerPort(container_port=self.port, protocol="TCP")],
            env=self.container_env(credentials),
            volume_mounts=[client.V1VolumeMount(name="data", mount_path=self.data_path)]
        )
        deployment = client.V1Deployment(
            metadata=client.V1ObjectMeta(
                name=record.name,
                namespace=record.namespace,
                labels=labels
            ),
            spec=client.V1DeploymentSpec(
                replicas=1,
                selector=client.V1LabelSelector(match_labels=labels),
                strategy=client.V1DeploymentStrategy(type="Recreate"),
                template=client.V1PodTemplateSpec(
                    metadata=client.V1ObjectMeta(labels=labels),
                    spec=client.V1PodSpec(
                        containers=[container],
                        volumes=[
                            client.V1Volume(
                                name="data",
                                persistent_volume_claim=client.V1PersistentVolumeClaimVolumeSource(
                                    claim_name=record.name
                                )
                            )
                        ]
                    )
                )
            )
        )
        self._create(self.apps_v1.create_namespaced_deployment, record.namespace, deployment,
                     f"deployment {record.name}")

    def create(self, record: IntentRecord, strategy_config: StrategyConfig):
        """
        Ensure the in-cluster objects exist.

        Returns:
            Tuple of (deployment details once available or None, status message)
        """
        self.store.add_finalizer(record, FALLBACK_FINALIZER)
        strategy = self._decode(strategy_config)

        try:
            credentials = self._reconcile_credentials(record)
            self._create_pvc(record, strategy.storage_size or DEFAULT_STORAGE_SIZE)
            self._create_deployment(record, strategy.image or self.default_image, credentials)
            self._create_service(record)
            deployment = self.apps_v1.read_namespaced_deployment(name=record.name, namespace=record.namespace)
        except ApiException as e:
            raise self._error(f"failed to create {record.kind.value} objects", record, e)

        if not is_deployment_available(deployment):
            return None, "creation in progress"
        return self.details(record, credentials), "creation successful"

    def details(self, record: IntentRecord, credentials: Dict[str, str]):
        raise NotImplementedError

    def delete(self, record: IntentRecord, strategy_config: StrategyConfig) -> str:
        """
        Remove the in-cluster objects and then the finalizer.

        Returns:
            Empty status message, deletion is issued in a single step
        """
        logger.info(f"Deleting {record.kind.value} {record.name} objects in namespace {record.namespace}")
        try:
            self._delete(self.core_v1.delete_namespaced_service, record.name, record.namespace)
            self._delete(self.apps_v1.delete_namespaced_deployment, record.name, record.namespace)
            self._delete(self.core_v1.delete_namespaced_persistent_volume_claim, record.name, record.namespace)
        except ApiException as e:
            raise self._error(f"failed to delete {record.kind.value} objects", record, e)
        self.store.delete_secret(record.namespace, self.credentials_secret_name(record))

        self.store.remove_finalizer(record, FALLBACK_FINALIZER)
        return ""


class FallbackPostgresProvisioner(FallbackProvisioner):
    """Postgres served from a single in-cluster pod."""

    provider_name = "openshift-postgres"
    default_image = POSTGRES_IMAGE
    port = POSTGRES_PORT
    data_path = "/var/lib/pgsql/data"

    def _reconcile_credentials(self, record: IntentRecord) -> Dict[str, str]:
        name = self.credentials_secret_name(record)
        existing = self.store.get_secret(record.namespace, name) or {}
        if existing.get("password"):
            return existing
        credentials = {
            "user": POSTGRES_USER,
            "password": generate_password(),
            "database": POSTGRES_DATABASE,
        }
        self.store.upsert_secret(record.namespace, name, credentials)
        return credentials

    def container_env(self, credentials: Dict[str, str]):
        return [
            client.V1EnvVar(name="POSTGRESQL_USER", value=credentials["user"]),
            client.V1EnvVar(name="POSTGRESQL_PASSWORD", value=credentials["password"]),
            client.V1EnvVar(name="POSTGRESQL_DATABASE", value=credentials["database"]),
        ]

    def details(self, record: IntentRecord, credentials: Dict[str, str]) -> PostgresDeploymentDetails:
        return PostgresDeploymentDetails(
            username=credentials["user"],
            password=credentials["password"],
            host=service_host(record.name, record.namespace),
            database=credentials["database"],
            port=self.port,
        )


class FallbackRedisProvisioner(FallbackProvisioner):
    """Redis served from a single in-cluster pod, without authentication."""

    provider_name = "openshift-redis"
    default_image = REDIS_IMAGE
    port = REDIS_PORT
    data_path = "/var/lib/redis/data"

    def details(self, record: IntentRecord, credentials: Dict[str, str]) -> RedisDeploymentDetails:
        return RedisDeploymentDetails(uri=service_host(record.name, record.namespace), port=self.port)


class FallbackBlobStorageProvisioner:
    """
    Pass-through blobstorage provisioner.

    Nothing is created. Connection keys default to placeholders and any
    values already present in the connection secret are kept.
    """

    provider_name = "openshift-blobstorage"

    def __init__(self, store):
        self.store = store

    def create(self, record: IntentRecord,
               strategy_config: StrategyConfig) -> Tuple[Optional[BlobStorageDeploymentDetails], str]:
        self.store.add_finalizer(record, FALLBACK_FINALIZER)

        existing = {}
        ref = record.connection_secret_ref()
        if ref is not None:
            existing = self.store.get_secret(ref.namespace, ref.name) or {}

        return BlobStorageDeploymentDetails(
            bucket_name=existing.get("bucketName", PLACEHOLDER_VALUE),
            credential_key_id=existing.get("credentialKeyID", PLACEHOLDER_VALUE),
            credential_secret_key=existing.get("credentialSecretKey", PLACEHOLDER_VALUE),
            bucket_region=existing.get("bucketRegion", PLACEHOLDER_VALUE),
        ), "reconcile complete"

    def delete(self, record: IntentRecord, strategy_config: StrategyConfig) -> str:
        logger.info(f"Deletion of blob storage instance {record.name} complete")
        self.store.remove_finalizer(record, FALLBACK_FINALIZER)
        return ""
