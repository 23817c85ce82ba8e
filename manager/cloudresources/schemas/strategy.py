"""
Pydantic schemas for strategy documents.

Tier configuration is stored as JSON in config maps. The create and delete
blobs are decoded into provider-specific shapes whose field names match the
boto3 request parameters. Every field is optional: None means the tier has
no opinion and the provisioner fills in a default. The diff algorithm relies
on that distinction, so fields must never be defaulted at decode time.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class DeploymentStrategyMapping(BaseModel):
    """Provider identifier to use per resource kind for one deployment type."""

    blobstorage: Optional[str] = Field(None, description="Strategy for object storage")
    postgres: Optional[str] = Field(None, description="Strategy for databases")
    redis: Optional[str] = Field(None, description="Strategy for caches")

    model_config = ConfigDict(extra="ignore")

    def for_kind(self, kind: str) -> Optional[str]:
        return getattr(self, kind, None)


class StrategyConfig(BaseModel):
    """Region plus raw create/delete parameters for one tier."""

    region: str = Field("", description="Cloud region, empty for the cluster default")
    create_strategy: Optional[Dict[str, Any]] = Field(
        None, alias="createStrategy", description="Raw create parameters"
    )
    delete_strategy: Optional[Dict[str, Any]] = Field(
        None, alias="deleteStrategy", description="Raw delete parameters"
    )

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ProviderRequest(BaseModel):
    """Base for provider request shapes."""

    model_config = ConfigDict(extra="ignore")

    def to_request(self) -> Dict[str, Any]:
        """Keyword arguments for the boto3 call, unset fields omitted."""
        return self.model_dump(exclude_none=True)


class RDSCreateConfig(ProviderRequest):
    """Subset of rds.create_db_instance parameters a tier may set."""

    DBInstanceIdentifier: Optional[str] = None
    DBName: Optional[str] = None
    DBInstanceClass: Optional[str] = None
    Engine: Optional[str] = None
    EngineVersion: Optional[str] = None
    MasterUsername: Optional[str] = None
    MasterUserPassword: Optional[str] = None
    Port: Optional[int] = None
    AllocatedStorage: Optional[int] = None
    MaxAllocatedStorage: Optional[int] = None
    BackupRetentionPeriod: Optional[int] = None
    DeletionProtection: Optional[bool] = None
    PubliclyAccessible: Optional[bool] = None
    MultiAZ: Optional[bool] = None
    DBSubnetGroupName: Optional[str] = None
    VpcSecurityGroupIds: Optional[List[str]] = None
    PreferredBackupWindow: Optional[str] = None
    PreferredMaintenanceWindow: Optional[str] = None


class RDSDeleteConfig(ProviderRequest):
    """Subset of rds.delete_db_instance parameters a tier may set."""

    DBInstanceIdentifier: Optional[str] = None
    SkipFinalSnapshot: Optional[bool] = None
    FinalDBSnapshotIdentifier: Optional[str] = None
    DeleteAutomatedBackups: Optional[bool] = None


class ElastiCacheCreateConfig(ProviderRequest):
    """Subset of elasticache.create_replication_group parameters a tier may set."""

    ReplicationGroupId: Optional[str] = None
    ReplicationGroupDescription: Optional[str] = None
    CacheNodeType: Optional[str] = None
    Engine: Optional[str] = None
    EngineVersion: Optional[str] = None
    NumCacheClusters: Optional[int] = None
    SnapshotRetentionLimit: Optional[int] = None
    AutomaticFailoverEnabled: Optional[bool] = None
    CacheSubnetGroupName: Optional[str] = None
    SecurityGroupIds: Optional[List[str]] = None
    Port: Optional[int] = None
    PreferredMaintenanceWindow: Optional[str] = None
    SnapshotWindow: Optional[str] = None


class ElastiCacheDeleteConfig(ProviderRequest):
    """Subset of elasticache.delete_replication_group parameters a tier may set."""

    ReplicationGroupId: Optional[str] = None
    RetainPrimaryCluster: Optional[bool] = None
    FinalSnapshotIdentifier: Optional[str] = None


class S3BucketConfig(ProviderRequest):
    """Subset of s3.create_bucket parameters a tier may set."""

    Bucket: Optional[str] = None
    ACL: Optional[str] = None
    CreateBucketConfiguration: Optional[Dict[str, Any]] = None


class FallbackStrategy(BaseModel):
    """In-cluster template overrides for the fallback provider."""

    image: Optional[str] = Field(None, description="Container image override")
    storage_size: Optional[str] = Field(None, alias="storageSize", description="PVC size, e.g. 1Gi")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")
