from cloudresources.models.enums import CredentialMode, DeploymentStrategy, Phase, ResourceType
from cloudresources.models.records import IntentRecord, SecretRef, Status

__all__ = [
    "CredentialMode",
    "DeploymentStrategy",
    "Phase",
    "ResourceType",
    "IntentRecord",
    "SecretRef",
    "Status",
]
