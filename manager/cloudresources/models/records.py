"""
Intent records and their status.

Intent records are custom objects owned by the caller. The engine reads
their spec and metadata and only ever writes to the status sub-fields and
the finalizer list.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from cloudresources.models.enums import Phase, ResourceType


@dataclass
class SecretRef:
    """Reference to a secret, the namespace defaults to the record's."""
    name: str
    namespace: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["SecretRef"]:
        if not data or not data.get("name"):
            return None
        return cls(name=data["name"], namespace=data.get("namespace") or None)

    def to_dict(self) -> Dict[str, str]:
        data = {"name": self.name}
        if self.namespace:
            data["namespace"] = self.namespace
        return data


@dataclass
class Status:
    """
    Convergence status of an intent record.

    Attributes:
        phase: Current phase
        strategy: Active strategy, sticky once set
        provider: Name of the provider implementation in use
        message: Human-readable status message
        secret_ref: Where connection details were published
        snapshot_id: Provider snapshot identifier (snapshot kinds only)
    """
    phase: Phase = Phase.NONE
    strategy: str = ""
    provider: str = ""
    message: str = ""
    secret_ref: Optional[SecretRef] = None
    snapshot_id: str = ""

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Status":
        data = data or {}
        try:
            phase = Phase(data.get("phase", ""))
        except ValueError:
            phase = Phase.NONE
        return cls(
            phase=phase,
            strategy=data.get("strategy", ""),
            provider=data.get("provider", ""),
            message=data.get("message", ""),
            secret_ref=SecretRef.from_dict(data.get("secretRef")),
            snapshot_id=data.get("snapshotID", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "phase": self.phase.value,
            "strategy": self.strategy,
            "provider": self.provider,
            "message": self.message,
        }
        if self.secret_ref:
            data["secretRef"] = self.secret_ref.to_dict()
        if self.snapshot_id:
            data["snapshotID"] = self.snapshot_id
        return data


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class IntentRecord:
    """
    Desired-state declaration for one cloud resource.

    Attributes:
        kind: Resource kind
        name: Record name
        namespace: Record namespace
        tier: Tier name used to resolve a strategy
        deployment_type: Deployment type used to pick the provider
        skip_create: Creation is explicitly paused
        deletion_requested: The record carries a deletion timestamp
        secret_ref: Where connection details should be published
        resource_name: Owning record name (snapshot kinds only)
        labels: Record labels
        finalizers: Pre-delete hooks currently set
        creation_timestamp: When the record was created
        generation: Spec generation, bumped by the API server on every spec change
        status: Current status
    """
    kind: ResourceType
    name: str
    namespace: str
    tier: str = ""
    deployment_type: str = "managed"
    skip_create: bool = False
    deletion_requested: bool = False
    secret_ref: Optional[SecretRef] = None
    resource_name: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    finalizers: List[str] = field(default_factory=list)
    creation_timestamp: Optional[datetime] = None
    generation: int = 0
    status: Status = field(default_factory=Status)

    @classmethod
    def from_custom_object(cls, kind: ResourceType, obj: Dict[str, Any]) -> "IntentRecord":
        """Build a record from a custom object as returned by the Kubernetes API."""
        metadata = obj.get("metadata", {})
        spec = obj.get("spec", {})
        return cls(
            kind=kind,
            name=metadata["name"],
            namespace=metadata.get("namespace", ""),
            tier=spec.get("tier", ""),
            deployment_type=spec.get("type") or "managed",
            skip_create=bool(spec.get("skipCreate", False)),
            deletion_requested=metadata.get("deletionTimestamp") is not None,
            secret_ref=SecretRef.from_dict(spec.get("secretRef")),
            resource_name=spec.get("resourceName", ""),
            labels=dict(metadata.get("labels") or {}),
            finalizers=list(metadata.get("finalizers") or []),
            creation_timestamp=_parse_timestamp(metadata.get("creationTimestamp")),
            generation=int(metadata.get("generation") or 0),
            status=Status.from_dict(obj.get("status")),
        )

    @property
    def product_name(self) -> str:
        return self.labels.get("productName", "")

    def has_finalizer(self, finalizer: str) -> bool:
        return finalizer in self.finalizers

    def connection_secret_ref(self) -> Optional[SecretRef]:
        """Secret connection details are published to, defaulted to the record's namespace."""
        if self.secret_ref is None:
            return None
        return SecretRef(
            name=self.secret_ref.name,
            namespace=self.secret_ref.namespace or self.namespace,
        )
