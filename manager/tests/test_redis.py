"""Tests for cloudresources.services.provisioning.redis."""
import pytest

from cloudresources.errors import ProvisionerException
from cloudresources.schemas.strategy import ElastiCacheCreateConfig, StrategyConfig
from cloudresources.services.provisioning.base import DEFAULT_FINALIZER, RedisDeploymentDetails
from cloudresources.services.provisioning.redis import AWSRedisProvisioner, build_elasticache_update_strategy

from conftest import REGION

GROUP_ID = "testclustercrotestexample"


def available_group(**overrides):
    group = {
        "ReplicationGroupId": GROUP_ID,
        "Status": "available",
        "CacheNodeType": "cache.t2.micro",
        "SnapshotRetentionLimit": 30,
        "PendingModifiedValues": {},
        "NodeGroups": [
            {
                "Status": "available",
                "PrimaryEndpoint": {"Address": f"{GROUP_ID}.cache.amazonaws.com", "Port": 6379},
                "NodeGroupMembers": [
                    {"CacheClusterId": f"{GROUP_ID}-001", "CurrentRole": "primary",
                     "PreferredAvailabilityZone": "eu-west-1a"},
                    {"CacheClusterId": f"{GROUP_ID}-002", "CurrentRole": "replica",
                     "PreferredAvailabilityZone": "eu-west-1b"},
                ],
            }
        ],
    }
    group.update(overrides)
    return group


@pytest.fixture
def elasticache(aws_clients):
    client = aws_clients["elasticache"]
    client.describe_replication_groups.return_value = {"ReplicationGroups": []}
    client.describe_cache_subnet_groups.return_value = {
        "CacheSubnetGroups": [{"CacheSubnetGroupName": "testclustersubnetgroup"}]
    }
    client.describe_cache_clusters.return_value = {"CacheClusters": [{"CacheClusterStatus": "available"}]}
    client.describe_snapshots.return_value = {"Snapshots": []}
    aws_clients["sts"].get_caller_identity.return_value = {"Account": "123456789012"}
    return client


@pytest.fixture
def provisioner(store, credential_manager, no_wait_retry):
    return AWSRedisProvisioner(store, credential_manager, retry_policy=no_wait_retry)


@pytest.fixture
def strategy():
    return StrategyConfig(region=REGION, create_strategy={}, delete_strategy={})


class TestBuildElasticacheUpdateStrategy:
    """Tests for the replication group diff."""

    def test_node_type_diff(self):
        modify = build_elasticache_update_strategy(ElastiCacheCreateConfig(CacheNodeType="cache.m5.large"),
                                                   available_group())
        assert modify == {"CacheNodeType": "cache.m5.large", "ReplicationGroupId": GROUP_ID}

    def test_retention_diff(self):
        modify = build_elasticache_update_strategy(ElastiCacheCreateConfig(SnapshotRetentionLimit=7),
                                                   available_group())
        assert modify == {"SnapshotRetentionLimit": 7, "ReplicationGroupId": GROUP_ID}

    def test_unset_fields_never_diff(self):
        assert build_elasticache_update_strategy(ElastiCacheCreateConfig(), available_group()) is None


class TestCreate:
    """Tests for converging an ElastiCache replication group."""

    def test_missing_group_is_created_with_defaults(self, provisioner, elasticache, store, make_record, strategy):
        record = make_record()

        result, msg = provisioner.create(record, strategy)

        assert (result, msg) == (None, "started elasticache provision")
        store.add_finalizer.assert_called_once_with(record, DEFAULT_FINALIZER)
        request = elasticache.create_replication_group.call_args.kwargs
        assert request["ReplicationGroupId"] == GROUP_ID
        assert request["Engine"] == "redis"
        assert request["AutomaticFailoverEnabled"] is True
        assert request["NumCacheClusters"] == 2
        assert request["SecurityGroupIds"] == ["sg-0123"]

    def test_creating_group_reports_status(self, provisioner, elasticache, make_record, strategy):
        elasticache.describe_replication_groups.return_value = {
            "ReplicationGroups": [available_group(Status="creating")]
        }

        result, msg = provisioner.create(make_record(), strategy)

        assert result is None
        assert msg == "createReplicationGroup() in progress, current aws elasticache status is creating"
        elasticache.create_replication_group.assert_not_called()

    def test_available_group_returns_primary_endpoint(self, provisioner, elasticache, make_record, strategy):
        elasticache.describe_replication_groups.return_value = {"ReplicationGroups": [available_group()]}
        elasticache.describe_snapshots.return_value = {"Snapshots": [{"SnapshotName": "snap-1"}]}

        result, msg = provisioner.create(make_record(), strategy)

        assert result == RedisDeploymentDetails(uri=f"{GROUP_ID}.cache.amazonaws.com", port=6379)
        assert result.data() == {"uri": f"{GROUP_ID}.cache.amazonaws.com", "port": "6379"}
        assert msg == "successfully created and tagged, aws elasticache status is available"
        arns = [c.kwargs["ResourceName"] for c in elasticache.add_tags_to_resource.call_args_list]
        assert f"arn:aws:elasticache:eu-west-1:123456789012:cluster:{GROUP_ID}-001" in arns
        assert "arn:aws:elasticache:eu-west-1:123456789012:snapshot:snap-1" in arns
        elasticache.modify_replication_group.assert_not_called()

    def test_node_not_ready_for_tags(self, provisioner, elasticache, make_record, strategy):
        elasticache.describe_replication_groups.return_value = {"ReplicationGroups": [available_group()]}
        elasticache.describe_cache_clusters.return_value = {"CacheClusters": [{"CacheClusterStatus": "modifying"}]}

        result, msg = provisioner.create(make_record(), strategy)

        assert result is None
        assert msg == f"{GROUP_ID}-001 status is modifying, skipping adding tags"

    def test_diff_modifies_immediately(self, provisioner, elasticache, make_record):
        elasticache.describe_replication_groups.return_value = {"ReplicationGroups": [available_group()]}
        strategy = StrategyConfig(region=REGION, create_strategy={"CacheNodeType": "cache.m5.large"})

        result, msg = provisioner.create(make_record(), strategy)

        assert result is None
        assert msg.startswith("changes detected, modifyReplicationGroup() in progress")
        elasticache.modify_replication_group.assert_called_once_with(
            ApplyImmediately=True, CacheNodeType="cache.m5.large", ReplicationGroupId=GROUP_ID
        )

    def test_pending_modification_is_not_resubmitted(self, provisioner, elasticache, make_record):
        elasticache.describe_replication_groups.return_value = {
            "ReplicationGroups": [available_group(PendingModifiedValues={"CacheNodeType": "cache.m5.large"})]
        }
        strategy = StrategyConfig(region=REGION, create_strategy={"CacheNodeType": "cache.m5.large"})

        _, msg = provisioner.create(make_record(), strategy)

        assert msg == "modification pending, current aws elasticache status is available"
        elasticache.modify_replication_group.assert_not_called()

    def test_provider_error_is_wrapped(self, provisioner, elasticache, make_record, strategy, client_error):
        elasticache.create_replication_group.side_effect = client_error("InvalidParameterValue")

        with pytest.raises(ProvisionerException):
            provisioner.create(make_record(), strategy)


class TestDelete:
    """Tests for draining an ElastiCache replication group."""

    def test_absent_group_finishes_deletion(self, provisioner, elasticache, store, make_record, strategy):
        record = make_record(deletion_requested=True)

        assert provisioner.delete(record, strategy) == ""
        store.remove_finalizer.assert_called_once_with(record, DEFAULT_FINALIZER)

    def test_available_group_is_deleted(self, provisioner, elasticache, make_record, strategy):
        elasticache.describe_replication_groups.return_value = {"ReplicationGroups": [available_group()]}

        msg = provisioner.delete(make_record(deletion_requested=True), strategy)

        assert msg == "delete detected, deleteReplicationGroup started"
        elasticache.delete_replication_group.assert_called_once_with(
            ReplicationGroupId=GROUP_ID, RetainPrimaryCluster=False
        )

    def test_empty_final_snapshot_id_is_generated(self, provisioner, elasticache, make_record):
        elasticache.describe_replication_groups.return_value = {"ReplicationGroups": [available_group()]}
        strategy = StrategyConfig(region=REGION, delete_strategy={"FinalSnapshotIdentifier": ""})

        provisioner.delete(make_record(deletion_requested=True), strategy)

        assert elasticache.delete_replication_group.call_args.kwargs["FinalSnapshotIdentifier"]

    def test_deleting_group_is_left_alone(self, provisioner, elasticache, make_record, strategy):
        elasticache.describe_replication_groups.return_value = {
            "ReplicationGroups": [available_group(Status="deleting")]
        }

        msg = provisioner.delete(make_record(deletion_requested=True), strategy)

        assert msg == "delete detected, deleteReplicationGroup() in progress, current aws elasticache status is deleting"
        elasticache.delete_replication_group.assert_not_called()

    def test_not_found_on_delete_is_tolerated(self, provisioner, elasticache, make_record, strategy, client_error):
        elasticache.describe_replication_groups.return_value = {"ReplicationGroups": [available_group()]}
        elasticache.delete_replication_group.side_effect = client_error("ReplicationGroupNotFoundFault")

        assert provisioner.delete(make_record(deletion_requested=True), strategy) == (
            "delete detected, deleteReplicationGroup started"
        )
