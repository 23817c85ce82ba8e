"""Kubernetes-backed store for intent records, secrets and config maps."""
import base64
import logging
from typing import Any, Dict, List, Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from cloudresources.errors import StoreError
from cloudresources.models.enums import ResourceType
from cloudresources.models.records import IntentRecord

logger = logging.getLogger(__name__)

RECORD_GROUP = "integreatly.org"
RECORD_VERSION = "v1alpha1"

CREDENTIALS_REQUEST_GROUP = "cloudcredential.openshift.io"
CREDENTIALS_REQUEST_VERSION = "v1"
CREDENTIALS_REQUEST_PLURAL = "credentialsrequests"

RECORD_PLURALS = {
    ResourceType.POSTGRES: "postgres",
    ResourceType.REDIS: "redis",
    ResourceType.BLOBSTORAGE: "blobstorages",
    ResourceType.POSTGRES_SNAPSHOT: "postgressnapshots",
    ResourceType.REDIS_SNAPSHOT: "redissnapshots",
}


def is_not_found(error: ApiException) -> bool:
    return error.status == 404


class KubernetesStore:
    """Control-plane store backed by the Kubernetes API.

    Intent records are custom objects in the integreatly.org/v1alpha1 group.
    The engine only writes their status sub-resource and finalizer list.
    """

    def __init__(
        self,
        in_cluster: bool = False,
        kubeconfig_path: Optional[str] = None,
        core_v1: Optional[client.CoreV1Api] = None,
        apps_v1: Optional[client.AppsV1Api] = None,
        custom_objects: Optional[client.CustomObjectsApi] = None,
    ):
        """Initialize the store.

        Args:
            in_cluster: Whether running in cluster
            kubeconfig_path: Path to kubeconfig (optional)
            core_v1: Preconfigured CoreV1Api, skips config loading when all clients are given
            apps_v1: Preconfigured AppsV1Api
            custom_objects: Preconfigured CustomObjectsApi
        """
        if core_v1 is None or apps_v1 is None or custom_objects is None:
            if in_cluster:
                config.load_incluster_config()
            elif kubeconfig_path:
                config.load_kube_config(config_file=kubeconfig_path)
            else:
                config.load_kube_config()

        self.core_v1 = core_v1 or client.CoreV1Api()
        self.apps_v1 = apps_v1 or client.AppsV1Api()
        self.custom_objects = custom_objects or client.CustomObjectsApi()

    # Intent records

    def get_record(self, kind: ResourceType, namespace: str, name: str) -> Optional[IntentRecord]:
        """Fetch one intent record, None when it no longer exists."""
        try:
            obj = self.custom_objects.get_namespaced_custom_object(
                group=RECORD_GROUP,
                version=RECORD_VERSION,
                namespace=namespace,
                plural=RECORD_PLURALS[kind],
                name=name,
            )
        except ApiException as e:
            if is_not_found(e):
                return None
            raise StoreError(f"failed to get {kind.value} {name}", resource_id=name, original_error=e)
        return IntentRecord.from_custom_object(kind, obj)

    def list_records(self, kind: ResourceType, namespace: Optional[str] = None) -> List[IntentRecord]:
        """List intent records of one kind, cluster wide when namespace is None."""
        try:
            if namespace:
                result = self.custom_objects.list_namespaced_custom_object(
                    group=RECORD_GROUP,
                    version=RECORD_VERSION,
                    namespace=namespace,
                    plural=RECORD_PLURALS[kind],
                )
            else:
                result = self.custom_objects.list_cluster_custom_object(
                    group=RECORD_GROUP,
                    version=RECORD_VERSION,
                    plural=RECORD_PLURALS[kind],
                )
        except ApiException as e:
            raise StoreError(f"failed to list {kind.value} records", original_error=e)
        return [IntentRecord.from_custom_object(kind, item) for item in result.get("items", [])]

    def update_status(self, record: IntentRecord) -> None:
        """Write the record's status sub-resource."""
        try:
            self.custom_objects.patch_namespaced_custom_object_status(
                group=RECORD_GROUP,
                version=RECORD_VERSION,
                namespace=record.namespace,
                plural=RECORD_PLURALS[record.kind],
                name=record.name,
                body={"status": record.status.to_dict()},
            )
        except ApiException as e:
            raise StoreError(
                f"failed to update instance {record.name} in namespace {record.namespace}",
                resource_id=record.name,
                original_error=e,
            )

    def _patch_finalizers(self, record: IntentRecord, finalizers: List[str]) -> None:
        try:
            self.custom_objects.patch_namespaced_custom_object(
                group=RECORD_GROUP,
                version=RECORD_VERSION,
                namespace=record.namespace,
                plural=RECORD_PLURALS[record.kind],
                name=record.name,
                body={"metadata": {"finalizers": finalizers}},
            )
        except ApiException as e:
            raise StoreError(
                "failed to update instance as part of finalizer reconcile",
                resource_id=record.name,
                original_error=e,
            )
        record.finalizers = finalizers

    def add_finalizer(self, record: IntentRecord, finalizer: str) -> None:
        """Add a pre-delete hook unless the record already carries it."""
        if record.has_finalizer(finalizer) or record.deletion_requested:
            return
        logger.info(f"Adding finalizer {finalizer} to {record.kind.value} {record.name}")
        self._patch_finalizers(record, record.finalizers + [finalizer])

    def remove_finalizer(self, record: IntentRecord, finalizer: str) -> None:
        if not record.has_finalizer(finalizer):
            return
        logger.info(f"Removing finalizer {finalizer} from {record.kind.value} {record.name}")
        self._patch_finalizers(record, [f for f in record.finalizers if f != finalizer])

    # Secrets and config maps

    def get_secret(self, namespace: str, name: str) -> Optional[Dict[str, str]]:
        """Read a secret's decoded data, None when the secret does not exist."""
        try:
            secret = self.core_v1.read_namespaced_secret(name=name, namespace=namespace)
        except ApiException as e:
            if is_not_found(e):
                return None
            raise StoreError(f"failed to get secret {name}", resource_id=name, original_error=e)
        return {
            key: base64.b64decode(value).decode("utf-8")
            for key, value in (secret.data or {}).items()
        }

    def upsert_secret(self, namespace: str, name: str, data: Dict[str, str]) -> None:
        """Create the secret or merge data into the existing one."""
        body = client.V1Secret(
            metadata=client.V1ObjectMeta(name=name, namespace=namespace),
            string_data={key: str(value) for key, value in data.items()},
        )
        try:
            self.core_v1.create_namespaced_secret(namespace=namespace, body=body)
            logger.info(f"Created secret {name} in namespace {namespace}")
        except ApiException as e:
            if e.status != 409:
                raise StoreError(f"failed to create or update secret {name}", resource_id=name, original_error=e)
            try:
                self.core_v1.patch_namespaced_secret(name=name, namespace=namespace, body=body)
            except ApiException as patch_error:
                raise StoreError(
                    f"failed to create or update secret {name}", resource_id=name, original_error=patch_error
                )

    def delete_secret(self, namespace: str, name: str) -> None:
        try:
            self.core_v1.delete_namespaced_secret(name=name, namespace=namespace)
            logger.info(f"Deleted secret {name} in namespace {namespace}")
        except ApiException as e:
            if not is_not_found(e):
                raise StoreError(f"failed to delete secret {name}", resource_id=name, original_error=e)

    def get_config_map(self, namespace: str, name: str) -> Optional[Dict[str, str]]:
        """Read a config map's data, None when it does not exist."""
        try:
            cm = self.core_v1.read_namespaced_config_map(name=name, namespace=namespace)
        except ApiException as e:
            if is_not_found(e):
                return None
            raise StoreError(f"failed to get config map {name}", resource_id=name, original_error=e)
        return dict(cm.data or {})

    # Credential requests

    def get_credentials_request(self, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        try:
            return self.custom_objects.get_namespaced_custom_object(
                group=CREDENTIALS_REQUEST_GROUP,
                version=CREDENTIALS_REQUEST_VERSION,
                namespace=namespace,
                plural=CREDENTIALS_REQUEST_PLURAL,
                name=name,
            )
        except ApiException as e:
            if is_not_found(e):
                return None
            raise StoreError(f"failed to get credential request {name}", resource_id=name, original_error=e)

    def apply_credentials_request(self, namespace: str, name: str, spec: Dict[str, Any]) -> Dict[str, Any]:
        """Create the credential request or replace its spec."""
        manifest = {
            "apiVersion": f"{CREDENTIALS_REQUEST_GROUP}/{CREDENTIALS_REQUEST_VERSION}",
            "kind": "CredentialsRequest",
            "metadata": {"name": name, "namespace": namespace},
            "spec": spec,
        }
        try:
            return self.custom_objects.create_namespaced_custom_object(
                group=CREDENTIALS_REQUEST_GROUP,
                version=CREDENTIALS_REQUEST_VERSION,
                namespace=namespace,
                plural=CREDENTIALS_REQUEST_PLURAL,
                body=manifest,
            )
        except ApiException as e:
            if e.status != 409:
                raise StoreError(f"failed to create credential request {name}", resource_id=name, original_error=e)
        try:
            return self.custom_objects.patch_namespaced_custom_object(
                group=CREDENTIALS_REQUEST_GROUP,
                version=CREDENTIALS_REQUEST_VERSION,
                namespace=namespace,
                plural=CREDENTIALS_REQUEST_PLURAL,
                name=name,
                body={"spec": spec},
            )
        except ApiException as e:
            raise StoreError(f"failed to update credential request {name}", resource_id=name, original_error=e)

    def delete_credentials_request(self, namespace: str, name: str) -> None:
        try:
            self.custom_objects.delete_namespaced_custom_object(
                group=CREDENTIALS_REQUEST_GROUP,
                version=CREDENTIALS_REQUEST_VERSION,
                namespace=namespace,
                plural=CREDENTIALS_REQUEST_PLURAL,
                name=name,
            )
        except ApiException as e:
            if not is_not_found(e):
                raise StoreError(f"failed to delete credential request {name}", resource_id=name, original_error=e)
            logger.info(f"Could not find credential request {name}, already deleted, continuing")

    # Cluster identity

    def get_infrastructure(self) -> Dict[str, Any]:
        """Read the cluster-scoped OpenShift Infrastructure object."""
        try:
            return self.custom_objects.get_cluster_custom_object(
                group="config.openshift.io",
                version="v1",
                plural="infrastructures",
                name="cluster",
            )
        except ApiException as e:
            raise StoreError("failed to get cluster infrastructure", original_error=e)

    def get_cluster_id(self) -> str:
        infra = self.get_infrastructure()
        cluster_id = infra.get("status", {}).get("infrastructureName")
        if not cluster_id:
            raise StoreError("cluster infrastructure has no infrastructureName")
        return cluster_id

    def get_cluster_region(self) -> str:
        """AWS region of the cluster, empty when not running on AWS."""
        platform = self.get_infrastructure().get("status", {}).get("platformStatus") or {}
        return (platform.get("aws") or {}).get("region", "")
