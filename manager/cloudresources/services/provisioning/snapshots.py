"""
Point-in-time snapshots of RDS instances and ElastiCache replication groups.

A snapshot record names its owning record. The snapshot id is built from the
snapshot record's own coordinates and creation time, stored in its status,
and reused on every later invocation.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from cloudresources.models.enums import Phase
from cloudresources.models.records import IntentRecord
from cloudresources.schemas.strategy import ElastiCacheCreateConfig, RDSCreateConfig, StrategyConfig

from .base import AVAILABLE_STATUS, DEFAULT_FINALIZER, AWSProvisioner, is_client_error

logger = logging.getLogger(__name__)


class AWSSnapshotProvisioner(AWSProvisioner):
    """
    Shared snapshot flow, specialised per service by subclasses.

    Attributes:
        service: boto3 service name
        owner_label: Name of the owning kind used in status messages
    """

    service = ""
    owner_label = ""

    def create(self, record: IntentRecord, owner: IntentRecord,
               strategy_config: StrategyConfig) -> Tuple[Optional[str], str]:
        """
        Converge a snapshot one step.

        Args:
            record: Snapshot record
            owner: Record owning the resource to snapshot
            strategy_config: Resolved strategy of the owner

        Returns:
            Tuple of (snapshot id once available or None, status message)

        Raises:
            ProvisionerException: If the owner is being deleted or a call fails
        """
        if owner.status.phase is Phase.DELETE_IN_PROGRESS:
            raise self._error("cannot create snapshot when instance deletion is in progress", resource_id=owner.name)
        if owner.status.phase is not Phase.COMPLETE:
            return None, f"waiting for {self.owner_label} instance to be available"

        self.store.add_finalizer(record, DEFAULT_FINALIZER)

        cluster_id = self.store.get_cluster_id()
        snapshot_id = record.status.snapshot_id or self.timestamped_name(cluster_id, record)
        record.status.snapshot_id = snapshot_id

        session = self._session(record, strategy_config.region)
        client = session.client(self.service)
        try:
            found = self.find_snapshot(client, snapshot_id)
            if found is None:
                resource_id = self.owner_resource_id(cluster_id, owner, strategy_config)
                logger.info(f"Creating {self.service} snapshot {snapshot_id} of {resource_id}")
                self.start_snapshot(client, resource_id, snapshot_id)
                return None, "snapshot started"
        except (BotoCoreError, ClientError) as e:
            raise self._error(f"error creating {self.service} snapshot", resource_id=snapshot_id, original_error=e)

        status = self.snapshot_status(found)
        if status != AVAILABLE_STATUS:
            return None, f"current snapshot status : {status}"
        return snapshot_id, "snapshot created"

    def delete(self, record: IntentRecord, strategy_config: StrategyConfig) -> str:
        """
        Drive deletion of a snapshot one step.

        Returns:
            Status message, empty once the snapshot is gone
        """
        snapshot_id = record.status.snapshot_id
        if not snapshot_id:
            self.store.remove_finalizer(record, DEFAULT_FINALIZER)
            return ""

        session = self._session(record, strategy_config.region)
        client = session.client(self.service)
        try:
            found = self.find_snapshot(client, snapshot_id)
            if found is None:
                logger.info(f"Snapshot {snapshot_id} deleted")
                self.store.remove_finalizer(record, DEFAULT_FINALIZER)
                return ""
            status = self.snapshot_status(found)
            if status != AVAILABLE_STATUS:
                return f"current snapshot status : {status}"
            logger.info(f"Deleting {self.service} snapshot {snapshot_id}")
            self.remove_snapshot(client, snapshot_id)
        except (BotoCoreError, ClientError) as e:
            raise self._error(f"failed to delete {self.service} snapshot", resource_id=snapshot_id, original_error=e)
        return "snapshot deletion started"

    def find_snapshot(self, client, snapshot_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def start_snapshot(self, client, resource_id: str, snapshot_id: str) -> None:
        raise NotImplementedError

    def remove_snapshot(self, client, snapshot_id: str) -> None:
        raise NotImplementedError

    def snapshot_status(self, snapshot: Dict[str, Any]) -> str:
        raise NotImplementedError

    def owner_resource_id(self, cluster_id: str, owner: IntentRecord, strategy_config: StrategyConfig) -> str:
        raise NotImplementedError


class AWSPostgresSnapshotProvisioner(AWSSnapshotProvisioner):
    """RDS db snapshots."""

    provider_name = "aws-rds-snapshot"
    service = "rds"
    owner_label = "postgres"

    def owner_resource_id(self, cluster_id: str, owner: IntentRecord, strategy_config: StrategyConfig) -> str:
        config = self._decode(RDSCreateConfig, strategy_config.create_strategy, "rds instance")
        return config.DBInstanceIdentifier or self.resource_name(cluster_id, owner)

    def find_snapshot(self, client, snapshot_id: str) -> Optional[Dict[str, Any]]:
        try:
            snapshots = client.describe_db_snapshots(DBSnapshotIdentifier=snapshot_id).get("DBSnapshots", [])
        except ClientError as e:
            if is_client_error(e, "DBSnapshotNotFound", "DBSnapshotNotFoundFault"):
                return None
            raise
        return next((s for s in snapshots if s["DBSnapshotIdentifier"] == snapshot_id), None)

    def start_snapshot(self, client, resource_id: str, snapshot_id: str) -> None:
        client.create_db_snapshot(DBInstanceIdentifier=resource_id, DBSnapshotIdentifier=snapshot_id)

    def remove_snapshot(self, client, snapshot_id: str) -> None:
        try:
            client.delete_db_snapshot(DBSnapshotIdentifier=snapshot_id)
        except ClientError as e:
            if not is_client_error(e, "DBSnapshotNotFound", "DBSnapshotNotFoundFault"):
                raise

    def snapshot_status(self, snapshot: Dict[str, Any]) -> str:
        return snapshot.get("Status", "")


class AWSRedisSnapshotProvisioner(AWSSnapshotProvisioner):
    """ElastiCache snapshots taken from the primary node of a replication group."""

    provider_name = "aws-elasticache-snapshot"
    service = "elasticache"
    owner_label = "redis"

    def owner_resource_id(self, cluster_id: str, owner: IntentRecord, strategy_config: StrategyConfig) -> str:
        config = self._decode(ElastiCacheCreateConfig, strategy_config.create_strategy, "elasticache cluster")
        return config.ReplicationGroupId or self.resource_name(cluster_id, owner)

    def start_snapshot(self, client, resource_id: str, snapshot_id: str) -> None:
        groups = client.describe_replication_groups(
            ReplicationGroupId=resource_id
        ).get("ReplicationGroups", [])
        if not groups or not groups[0].get("NodeGroups"):
            raise self._error("no replication group found to snapshot", resource_id=resource_id)

        members = groups[0]["NodeGroups"][0].get("NodeGroupMembers", [])
        primary = next((m for m in members if m.get("CurrentRole") == "primary"), None)
        if primary is None:
            raise self._error("no primary node found in replication group", resource_id=resource_id)

        client.create_snapshot(CacheClusterId=primary["CacheClusterId"], SnapshotName=snapshot_id)

    def find_snapshot(self, client, snapshot_id: str) -> Optional[Dict[str, Any]]:
        try:
            snapshots = client.describe_snapshots(SnapshotName=snapshot_id).get("Snapshots", [])
        except ClientError as e:
            if is_client_error(e, "SnapshotNotFoundFault"):
                return None
            raise
        return next((s for s in snapshots if s["SnapshotName"] == snapshot_id), None)

    def remove_snapshot(self, client, snapshot_id: str) -> None:
        try:
            client.delete_snapshot(SnapshotName=snapshot_id)
        except ClientError as e:
            if not is_client_error(e, "SnapshotNotFoundFault"):
                raise

    def snapshot_status(self, snapshot: Dict[str, Any]) -> str:
        return snapshot.get("SnapshotStatus", "")
