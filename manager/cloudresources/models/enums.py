"""Cloud Resource Operator Enumeration Types"""

from enum import Enum


class ResourceType(Enum):
    """Resource kinds an intent record can declare"""
    POSTGRES = "postgres"
    REDIS = "redis"
    BLOBSTORAGE = "blobstorage"
    POSTGRES_SNAPSHOT = "postgressnapshot"
    REDIS_SNAPSHOT = "redissnapshot"

    @property
    def is_snapshot(self) -> bool:
        return self in (ResourceType.POSTGRES_SNAPSHOT, ResourceType.REDIS_SNAPSHOT)

    @property
    def owner_type(self) -> "ResourceType":
        """Resource kind a snapshot kind belongs to, or the kind itself."""
        if self is ResourceType.POSTGRES_SNAPSHOT:
            return ResourceType.POSTGRES
        if self is ResourceType.REDIS_SNAPSHOT:
            return ResourceType.REDIS
        return self


class Phase(Enum):
    """Convergence phase of an intent record"""
    NONE = ""
    COMPLETE = "Complete"
    IN_PROGRESS = "InProgress"
    FAILED = "Failed"
    DELETE_IN_PROGRESS = "DeleteInProgress"
    PAUSED = "Paused"


class DeploymentStrategy(Enum):
    """Provider identifiers a tier can resolve to"""
    AWS = "aws"
    OPENSHIFT = "openshift"


class CredentialMode(Enum):
    """How provider credentials are obtained"""
    REQUEST = "request"
    STS = "sts"
