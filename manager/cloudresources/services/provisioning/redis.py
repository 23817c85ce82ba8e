"""
AWS ElastiCache provisioner for redis intent records.

One replication group per record, in the cluster VPC. Connection details are
the primary endpoint of the first node group.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from cloudresources.models.records import IntentRecord
from cloudresources.schemas.strategy import ElastiCacheCreateConfig, ElastiCacheDeleteConfig, StrategyConfig
from cloudresources.services.network import DEFAULT_SUBNET_POSTFIX, NetworkResolver
from cloudresources.services.tagging import build_default_tags, format_aws_tags
from cloudresources.utils.naming import build_infra_name

from .base import (
    AVAILABLE_STATUS,
    DEFAULT_FINALIZER,
    AWSProvisioner,
    RedisDeploymentDetails,
    is_client_error,
)

logger = logging.getLogger(__name__)

REDIS_PROVIDER_NAME = "aws-elasticache"

# default create params
DEFAULT_CACHE_NODE_TYPE = "cache.t2.micro"
DEFAULT_ENGINE = "redis"
DEFAULT_ENGINE_VERSION = "3.2.10"
DEFAULT_DESCRIPTION = "A Redis replication group"
DEFAULT_NUM_CACHE_CLUSTERS = 2
DEFAULT_SNAPSHOT_RETENTION = 30

SUBNET_GROUP_DESCRIPTION = "Subnet group created and managed by the Cloud Resource Operator"

UPDATABLE_FIELDS = ["CacheNodeType", "SnapshotRetentionLimit"]


def build_elasticache_update_strategy(config: ElastiCacheCreateConfig,
                                      group: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Compare desired config with a found replication group.

    Returns:
        Keyword arguments for modify_replication_group, or None when nothing differs
    """
    modify = {}
    for field_name in UPDATABLE_FIELDS:
        desired = getattr(config, field_name)
        if desired is not None and desired != group.get(field_name):
            modify[field_name] = desired
    if not modify:
        return None
    modify["ReplicationGroupId"] = group["ReplicationGroupId"]
    return modify


class AWSRedisProvisioner(AWSProvisioner):
    """Provisions redis intent records as ElastiCache replication groups."""

    provider_name = REDIS_PROVIDER_NAME

    def create(self, record: IntentRecord,
               strategy_config: StrategyConfig) -> Tuple[Optional[RedisDeploymentDetails], str]:
        self.store.add_finalizer(record, DEFAULT_FINALIZER)

        create_config = self._decode(ElastiCacheCreateConfig, strategy_config.create_strategy, "elasticache cluster")
        session = self._session(record, strategy_config.region)

        try:
            return self.create_elasticache_cluster(
                record, session.client("elasticache"), session.client("sts"), session.client("ec2"), create_config
            )
        except (BotoCoreError, ClientError) as e:
            raise self._error("failed to provision aws elasticache cluster", resource_id=record.name, original_error=e)

    def create_elasticache_cluster(self, record: IntentRecord, cache_client, sts_client, ec2_client,
                                   create_config: ElastiCacheCreateConfig) -> Tuple[Optional[RedisDeploymentDetails], str]:
        groups = self._list(
            cache_client.describe_replication_groups, "ReplicationGroups", "describe replication groups"
        )

        cluster_id = self.store.get_cluster_id()
        network = NetworkResolver(ec2_client, cluster_id, self.organization_tag, self.retry_policy)
        self.configure_subnet_group(cache_client, network, cluster_id)
        security_group_id = network.configure_security_group()

        config = self.build_create_config(record, cluster_id, create_config, security_group_id)

        found = next((g for g in groups if g["ReplicationGroupId"] == config.ReplicationGroupId), None)

        if found is None:
            logger.info(f"Creating elasticache cluster {config.ReplicationGroupId}")
            try:
                cache_client.create_replication_group(**config.to_request())
            except ClientError as e:
                raise self._error(
                    "error creating elasticache cluster", resource_id=config.ReplicationGroupId, original_error=e
                )
            return None, "started elasticache provision"

        status = found.get("Status", "")
        if status != AVAILABLE_STATUS:
            return None, f"createReplicationGroup() in progress, current aws elasticache status is {status}"

        logger.info(f"Found existing elasticache cluster {config.ReplicationGroupId}")
        modify = build_elasticache_update_strategy(config, found)
        if modify is not None:
            if found.get("PendingModifiedValues"):
                return None, f"modification pending, current aws elasticache status is {status}"
            try:
                cache_client.modify_replication_group(ApplyImmediately=True, **modify)
            except ClientError as e:
                raise self._error(
                    "failed to modify elasticache cluster", resource_id=config.ReplicationGroupId, original_error=e
                )
            return None, (
                f"changes detected, modifyReplicationGroup() in progress, "
                f"current aws elasticache status is {status}"
            )

        node_groups = found.get("NodeGroups") or []
        if not node_groups or node_groups[0].get("Status") != AVAILABLE_STATUS:
            return None, f"cache node status not available, current status: {status}"
        node_group = node_groups[0]

        for member in node_group.get("NodeGroupMembers", []):
            msg = self.tag_elasticache_node(record, cache_client, sts_client, member, cluster_id)
            if msg is not None:
                return None, msg

        primary = node_group["PrimaryEndpoint"]
        return RedisDeploymentDetails(
            uri=primary["Address"],
            port=primary["Port"],
        ), f"successfully created and tagged, aws elasticache status is {status}"

    def tag_elasticache_node(self, record: IntentRecord, cache_client, sts_client,
                             member: Dict[str, Any], cluster_id: str) -> Optional[str]:
        """
        Apply owner tags to one cache node and its snapshots.

        Returns:
            None once tagged, or a message when the node is not ready for tags yet
        """
        cache_cluster_id = member["CacheClusterId"]
        logger.info(f"Creating or updating tags on elasticache node {cache_cluster_id} and snapshots")

        # the replication group may be available while one of its nodes is not
        clusters = cache_client.describe_cache_clusters(CacheClusterId=cache_cluster_id).get("CacheClusters", [])
        node_status = clusters[0].get("CacheClusterStatus", "") if clusters else ""
        if node_status != AVAILABLE_STATUS:
            return f"{cache_cluster_id} status is {node_status}, skipping adding tags"

        account = sts_client.get_caller_identity()["Account"]
        # availability zone minus its letter suffix
        region = member["PreferredAvailabilityZone"][:-1]
        tags = format_aws_tags(build_default_tags(record, cluster_id, self.organization_tag))

        try:
            cache_client.add_tags_to_resource(
                ResourceName=f"arn:aws:elasticache:{region}:{account}:cluster:{cache_cluster_id}",
                Tags=tags,
            )
            snapshots = cache_client.describe_snapshots(CacheClusterId=cache_cluster_id).get("Snapshots", [])
            for snapshot in snapshots:
                logger.info(f"Adding operator tags to snapshot {snapshot['SnapshotName']}")
                cache_client.add_tags_to_resource(
                    ResourceName=f"arn:aws:elasticache:{region}:{account}:snapshot:{snapshot['SnapshotName']}",
                    Tags=tags,
                )
        except ClientError as e:
            raise self._error("failed to add tags to aws elasticache", resource_id=cache_cluster_id, original_error=e)

        logger.info(f"Successfully created or updated tags on elasticache node {cache_cluster_id}")
        return None

    def build_create_config(self, record: IntentRecord, cluster_id: str, config: ElastiCacheCreateConfig,
                            security_group_id: str) -> ElastiCacheCreateConfig:
        config = config.model_copy()
        config.AutomaticFailoverEnabled = True
        config.Engine = DEFAULT_ENGINE
        if config.CacheNodeType is None:
            config.CacheNodeType = DEFAULT_CACHE_NODE_TYPE
        if config.ReplicationGroupDescription is None:
            config.ReplicationGroupDescription = DEFAULT_DESCRIPTION
        if config.EngineVersion is None:
            config.EngineVersion = DEFAULT_ENGINE_VERSION
        if config.NumCacheClusters is None:
            config.NumCacheClusters = DEFAULT_NUM_CACHE_CLUSTERS
        if config.SnapshotRetentionLimit is None:
            config.SnapshotRetentionLimit = DEFAULT_SNAPSHOT_RETENTION
        if config.ReplicationGroupId is None:
            config.ReplicationGroupId = self.resource_name(cluster_id, record)
        if config.CacheSubnetGroupName is None:
            config.CacheSubnetGroupName = build_infra_name(cluster_id, DEFAULT_SUBNET_POSTFIX)
        if config.SecurityGroupIds is None:
            config.SecurityGroupIds = [security_group_id]
        return config

    def configure_subnet_group(self, cache_client, network: NetworkResolver, cluster_id: str) -> None:
        logger.info("Configuring cluster vpc for redis resource")
        group_name = build_infra_name(cluster_id, DEFAULT_SUBNET_POSTFIX)

        groups = cache_client.describe_cache_subnet_groups().get("CacheSubnetGroups", [])
        if any(g["CacheSubnetGroupName"] == group_name for g in groups):
            logger.info(f"{group_name} resource subnet group found")
            return

        subnet_ids = network.get_private_subnet_ids()
        logger.info(f"Creating resource subnet group {group_name}")
        cache_client.create_cache_subnet_group(
            CacheSubnetGroupName=group_name,
            CacheSubnetGroupDescription=SUBNET_GROUP_DESCRIPTION,
            SubnetIds=subnet_ids,
        )

    def delete(self, record: IntentRecord, strategy_config: StrategyConfig) -> str:
        """
        Drive deletion of the replication group for a record one step.

        Returns:
            Status message, empty once the group is gone
        """
        create_config = self._decode(ElastiCacheCreateConfig, strategy_config.create_strategy, "elasticache cluster")
        delete_config = self._decode(ElastiCacheDeleteConfig, strategy_config.delete_strategy, "elasticache cluster")
        session = self._session(record, strategy_config.region)

        try:
            return self.delete_elasticache_cluster(record, session.client("elasticache"), create_config, delete_config)
        except (BotoCoreError, ClientError) as e:
            raise self._error("failed to delete aws elasticache cluster", resource_id=record.name, original_error=e)

    def build_delete_config(self, record: IntentRecord, cluster_id: str, create_config: ElastiCacheCreateConfig,
                            delete_config: ElastiCacheDeleteConfig) -> ElastiCacheDeleteConfig:
        config = delete_config.model_copy()
        if config.ReplicationGroupId is None:
            config.ReplicationGroupId = create_config.ReplicationGroupId or self.resource_name(cluster_id, record)
        if config.RetainPrimaryCluster is None:
            config.RetainPrimaryCluster = False
        # an explicitly empty final snapshot id asks for a generated one
        if config.FinalSnapshotIdentifier == "":
            config.FinalSnapshotIdentifier = self.timestamped_name(cluster_id, record)
        return config

    def delete_elasticache_cluster(self, record: IntentRecord, cache_client,
                                   create_config: ElastiCacheCreateConfig,
                                   delete_config: ElastiCacheDeleteConfig) -> str:
        groups = self._list(
            cache_client.describe_replication_groups, "ReplicationGroups", "describe replication groups"
        )

        cluster_id = self.store.get_cluster_id()
        config = self.build_delete_config(record, cluster_id, create_config, delete_config)

        found = next((g for g in groups if g["ReplicationGroupId"] == config.ReplicationGroupId), None)

        if found is None:
            self.store.remove_finalizer(record, DEFAULT_FINALIZER)
            return ""

        status = found.get("Status", "")
        if status != AVAILABLE_STATUS:
            return f"delete detected, deleteReplicationGroup() in progress, current aws elasticache status is {status}"

        logger.info(f"Deleting elasticache cluster {config.ReplicationGroupId}")
        try:
            cache_client.delete_replication_group(**config.to_request())
        except ClientError as e:
            if not is_client_error(e, "ReplicationGroupNotFoundFault"):
                raise self._error(
                    "failed to delete elasticache cluster", resource_id=config.ReplicationGroupId, original_error=e
                )
        return "delete detected, deleteReplicationGroup started"
