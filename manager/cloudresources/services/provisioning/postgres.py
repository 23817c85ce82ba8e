"""
AWS RDS provisioner for postgres intent records.

Converges one RDS instance per record, placed in the cluster VPC behind the
operator's subnet group and security group. The master password lives in a
co-managed ``<name>-aws-rds-credentials`` secret and is re-read on every
invocation.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from cloudresources.models.records import IntentRecord
from cloudresources.schemas.strategy import RDSCreateConfig, RDSDeleteConfig, StrategyConfig
from cloudresources.services.network import DEFAULT_SUBNET_POSTFIX, NetworkResolver
from cloudresources.services.tagging import build_default_tags, format_aws_tags
from cloudresources.utils.naming import build_infra_name
from cloudresources.utils.security import generate_password

from .base import (
    AVAILABLE_STATUS,
    DEFAULT_FINALIZER,
    AWSProvisioner,
    PostgresDeploymentDetails,
    is_client_error,
)

logger = logging.getLogger(__name__)

POSTGRES_PROVIDER_NAME = "aws-rds"

# default create params
DEFAULT_DELETION_PROTECTION = True
DEFAULT_PORT = 5432
DEFAULT_USER = "postgres"
DEFAULT_ALLOCATED_STORAGE = 20
DEFAULT_MAX_ALLOCATED_STORAGE = 100
DEFAULT_DATABASE = "postgres"
DEFAULT_BACKUP_RETENTION_PERIOD = 31
DEFAULT_INSTANCE_CLASS = "db.t2.small"
DEFAULT_MULTI_AZ = True
DEFAULT_ENGINE = "postgres"
DEFAULT_ENGINE_VERSION = "10.6"
DEFAULT_PUBLICLY_ACCESSIBLE = False
SUPPORTED_ENGINE_VERSIONS = ["10.6", "9.6", "9.5"]

# default delete params
DEFAULT_SKIP_FINAL_SNAPSHOT = False
DEFAULT_DELETE_AUTOMATED_BACKUPS = True

CREDENTIAL_SECRET_SUFFIX = "-aws-rds-credentials"
USER_KEY = "user"
PASSWORD_KEY = "password"

SUBNET_GROUP_DESCRIPTION = "Subnet group created and managed by the Cloud Resource Operator"

# (create parameter, modify parameter) pairs compared against a found instance
UPDATABLE_FIELDS = [
    ("DeletionProtection", "DeletionProtection"),
    ("Port", "DBPortNumber"),
    ("BackupRetentionPeriod", "BackupRetentionPeriod"),
    ("DBInstanceClass", "DBInstanceClass"),
    ("PubliclyAccessible", "PubliclyAccessible"),
    ("AllocatedStorage", "AllocatedStorage"),
    ("EngineVersion", "EngineVersion"),
    ("MultiAZ", "MultiAZ"),
]


def _observed_value(instance: Dict[str, Any], field_name: str) -> Any:
    if field_name == "Port":
        return (instance.get("Endpoint") or {}).get("Port")
    return instance.get(field_name)


def build_rds_update_strategy(config: RDSCreateConfig, instance: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Compare desired config with a found instance.

    A field left unset in the desired config never produces a change.

    Args:
        config: Desired create config
        instance: Instance as returned by describe_db_instances

    Returns:
        Keyword arguments for modify_db_instance, or None when nothing differs
    """
    modify = {}
    for create_field, modify_field in UPDATABLE_FIELDS:
        desired = getattr(config, create_field)
        if desired is None:
            continue
        if desired != _observed_value(instance, create_field):
            modify[modify_field] = desired
    if not modify:
        return None
    modify["DBInstanceIdentifier"] = instance["DBInstanceIdentifier"]
    return modify


class AWSPostgresProvisioner(AWSProvisioner):
    """Provisions postgres intent records as RDS instances."""

    provider_name = POSTGRES_PROVIDER_NAME

    def create(self, record: IntentRecord,
               strategy_config: StrategyConfig) -> Tuple[Optional[PostgresDeploymentDetails], str]:
        """
        Converge the RDS instance for a record one step.

        Returns:
            Tuple of (deployment details or None while converging, status message)

        Raises:
            ConfigNotFound: If the tier's create strategy cannot be decoded
            ProvisionerException: If a provider call fails
        """
        self.store.add_finalizer(record, DEFAULT_FINALIZER)

        create_config = self._decode(RDSCreateConfig, strategy_config.create_strategy, "rds instance")
        session = self._session(record, strategy_config.region)
        password = self.reconcile_credential_secret(record)

        try:
            return self.create_rds_instance(
                record, session.client("rds"), session.client("ec2"), create_config, password
            )
        except (BotoCoreError, ClientError) as e:
            raise self._error("failed to provision aws rds instance", resource_id=record.name, original_error=e)

    def reconcile_credential_secret(self, record: IntentRecord) -> str:
        """Master password from the co-managed secret, generated on first use."""
        secret_name = record.name + CREDENTIAL_SECRET_SUFFIX
        data = self.store.get_secret(record.namespace, secret_name) or {}
        password = data.get(PASSWORD_KEY, "")
        if not password:
            logger.info(f"Generating rds credentials secret {secret_name}")
            password = generate_password()
            self.store.upsert_secret(
                record.namespace, secret_name, {USER_KEY: DEFAULT_USER, PASSWORD_KEY: password}
            )
        return password

    def create_rds_instance(self, record: IntentRecord, rds_client, ec2_client,
                            create_config: RDSCreateConfig,
                            password: str) -> Tuple[Optional[PostgresDeploymentDetails], str]:
        instances = self._list(rds_client.describe_db_instances, "DBInstances", "describe rds instances")

        cluster_id = self.store.get_cluster_id()
        network = NetworkResolver(ec2_client, cluster_id, self.organization_tag, self.retry_policy)
        self.configure_subnet_group(rds_client, network, cluster_id)
        security_group_id = network.configure_security_group()

        config = self.build_create_config(record, cluster_id, create_config, password, security_group_id)

        found = next(
            (i for i in instances if i["DBInstanceIdentifier"] == config.DBInstanceIdentifier), None
        )

        if found is None:
            logger.info(f"Creating rds instance {config.DBInstanceIdentifier}")
            try:
                rds_client.create_db_instance(**config.to_request())
            except ClientError as e:
                raise self._error(
                    "error creating rds instance", resource_id=config.DBInstanceIdentifier, original_error=e
                )
            return None, "started rds provision"

        status = found.get("DBInstanceStatus", "")
        if status != AVAILABLE_STATUS:
            return None, f"createRDSInstance() in progress, current aws rds resource status is {status}"

        logger.info(f"Found existing rds instance {config.DBInstanceIdentifier}")
        modify = build_rds_update_strategy(config, found)
        if modify is not None:
            if found.get("PendingModifiedValues"):
                return None, f"modification pending, current aws rds resource status is {status}"
            logger.info(f"Modifying rds instance {config.DBInstanceIdentifier}: {sorted(modify)}")
            try:
                rds_client.modify_db_instance(**modify)
            except ClientError as e:
                raise self._error(
                    "failed to modify instance", resource_id=config.DBInstanceIdentifier, original_error=e
                )
            return None, f"changes detected, modifyDBInstance() in progress, current aws rds resource status is {status}"

        msg = self.tag_rds_postgres(record, rds_client, found, cluster_id)

        endpoint = found.get("Endpoint") or {}
        return PostgresDeploymentDetails(
            username=found["MasterUsername"],
            password=config.MasterUserPassword,
            host=endpoint.get("Address", ""),
            database=found.get("DBName", ""),
            port=endpoint.get("Port", DEFAULT_PORT),
        ), f"{msg}, aws rds status is {status}"

    def tag_rds_postgres(self, record: IntentRecord, rds_client, instance: Dict[str, Any], cluster_id: str) -> str:
        """Apply owner tags to an instance and each of its snapshots."""
        identifier = instance["DBInstanceIdentifier"]
        logger.info(f"Adding tags to rds instance {identifier}")
        tags = format_aws_tags(build_default_tags(record, cluster_id, self.organization_tag))

        try:
            rds_client.add_tags_to_resource(ResourceName=instance["DBInstanceArn"], Tags=tags)
            snapshots = rds_client.describe_db_snapshots(DBInstanceIdentifier=identifier).get("DBSnapshots", [])
            for snapshot in snapshots:
                rds_client.add_tags_to_resource(ResourceName=snapshot["DBSnapshotArn"], Tags=tags)
        except ClientError as e:
            raise self._error("failed to add tags to rds", resource_id=identifier, original_error=e)

        logger.info(f"Tags were added successfully to the rds instance {identifier}")
        return "successfully created and tagged"

    def build_create_config(self, record: IntentRecord, cluster_id: str, config: RDSCreateConfig,
                            password: str, security_group_id: str) -> RDSCreateConfig:
        """Copy of config with every unset field the provider requires defaulted."""
        config = config.model_copy()
        if config.DeletionProtection is None:
            config.DeletionProtection = DEFAULT_DELETION_PROTECTION
        if config.MasterUsername is None:
            config.MasterUsername = DEFAULT_USER
        if config.MasterUserPassword is None:
            config.MasterUserPassword = password
        if config.Port is None:
            config.Port = DEFAULT_PORT
        if config.DBName is None:
            config.DBName = DEFAULT_DATABASE
        if config.BackupRetentionPeriod is None:
            config.BackupRetentionPeriod = DEFAULT_BACKUP_RETENTION_PERIOD
        if config.DBInstanceClass is None:
            config.DBInstanceClass = DEFAULT_INSTANCE_CLASS
        if config.PubliclyAccessible is None:
            config.PubliclyAccessible = DEFAULT_PUBLICLY_ACCESSIBLE
        if config.AllocatedStorage is None:
            config.AllocatedStorage = DEFAULT_ALLOCATED_STORAGE
        if config.MaxAllocatedStorage is None:
            config.MaxAllocatedStorage = DEFAULT_MAX_ALLOCATED_STORAGE
        if config.EngineVersion not in SUPPORTED_ENGINE_VERSIONS:
            config.EngineVersion = DEFAULT_ENGINE_VERSION
        if config.DBInstanceIdentifier is None:
            config.DBInstanceIdentifier = self.resource_name(cluster_id, record)
        if config.MultiAZ is None:
            config.MultiAZ = DEFAULT_MULTI_AZ
        config.Engine = DEFAULT_ENGINE
        if config.DBSubnetGroupName is None:
            config.DBSubnetGroupName = build_infra_name(cluster_id, DEFAULT_SUBNET_POSTFIX)
        if config.VpcSecurityGroupIds is None:
            config.VpcSecurityGroupIds = [security_group_id]
        return config

    def configure_subnet_group(self, rds_client, network: NetworkResolver, cluster_id: str) -> None:
        """Ensure the db subnet group over the cluster's private subnets exists."""
        logger.info("Configuring cluster vpc for postgres resource")
        group_name = build_infra_name(cluster_id, DEFAULT_SUBNET_POSTFIX)

        groups = rds_client.describe_db_subnet_groups().get("DBSubnetGroups", [])
        if any(g["DBSubnetGroupName"] == group_name for g in groups):
            logger.info(f"Resource subnet group {group_name} found")
            return

        subnet_ids = network.get_private_subnet_ids()
        logger.info(f"Creating resource subnet group {group_name}")
        rds_client.create_db_subnet_group(
            DBSubnetGroupName=group_name,
            DBSubnetGroupDescription=SUBNET_GROUP_DESCRIPTION,
            SubnetIds=subnet_ids,
            Tags=[{"Key": "cluster", "Value": cluster_id}],
        )

    def delete(self, record: IntentRecord, strategy_config: StrategyConfig) -> str:
        """
        Drive deletion of the RDS instance for a record one step.

        Returns:
            Status message, empty once the instance is gone and the
            finalizer has been removed

        Raises:
            ProvisionerException: If a provider call fails
        """
        create_config = self._decode(RDSCreateConfig, strategy_config.create_strategy, "rds instance")
        delete_config = self._decode(RDSDeleteConfig, strategy_config.delete_strategy, "rds instance")
        session = self._session(record, strategy_config.region)

        try:
            return self.delete_rds_instance(record, session.client("rds"), create_config, delete_config)
        except (BotoCoreError, ClientError) as e:
            raise self._error("failed to delete aws rds instance", resource_id=record.name, original_error=e)

    def build_delete_config(self, record: IntentRecord, cluster_id: str, create_config: RDSCreateConfig,
                            delete_config: RDSDeleteConfig) -> RDSDeleteConfig:
        config = delete_config.model_copy()
        if config.DBInstanceIdentifier is None:
            config.DBInstanceIdentifier = create_config.DBInstanceIdentifier or self.resource_name(cluster_id, record)
        if config.DeleteAutomatedBackups is None:
            config.DeleteAutomatedBackups = DEFAULT_DELETE_AUTOMATED_BACKUPS
        if config.SkipFinalSnapshot is None:
            config.SkipFinalSnapshot = DEFAULT_SKIP_FINAL_SNAPSHOT
        if config.FinalDBSnapshotIdentifier is None and not config.SkipFinalSnapshot:
            config.FinalDBSnapshotIdentifier = self.timestamped_name(cluster_id, record)
        return config

    def delete_rds_instance(self, record: IntentRecord, rds_client, create_config: RDSCreateConfig,
                            delete_config: RDSDeleteConfig) -> str:
        instances = self._list(rds_client.describe_db_instances, "DBInstances", "describe rds instances")

        cluster_id = self.store.get_cluster_id()
        config = self.build_delete_config(record, cluster_id, create_config, delete_config)

        found = next(
            (i for i in instances if i["DBInstanceIdentifier"] == config.DBInstanceIdentifier), None
        )

        if found is None:
            logger.info(f"Deleting rds secret for {record.name}")
            self.store.delete_secret(record.namespace, record.name + CREDENTIAL_SECRET_SUFFIX)
            self.store.remove_finalizer(record, DEFAULT_FINALIZER)
            return ""

        status = found.get("DBInstanceStatus", "")
        if status != AVAILABLE_STATUS:
            return f"delete detected, deleteDBInstance() in progress, current aws rds status is {status}"

        if not found.get("DeletionProtection", False):
            logger.info(f"Deleting rds instance {config.DBInstanceIdentifier}")
            try:
                rds_client.delete_db_instance(**config.to_request())
            except ClientError as e:
                if not is_client_error(e, "DBInstanceNotFound", "DBInstanceNotFoundFault"):
                    raise self._error(
                        "failed to delete rds instance", resource_id=config.DBInstanceIdentifier, original_error=e
                    )
            return "delete detected, deleteDBInstance() started"

        logger.info(f"Removing deletion protection from rds instance {config.DBInstanceIdentifier}")
        try:
            rds_client.modify_db_instance(
                DBInstanceIdentifier=config.DBInstanceIdentifier,
                DeletionProtection=False,
                ApplyImmediately=True,
            )
        except ClientError as e:
            raise self._error(
                "failed to remove deletion protection", resource_id=config.DBInstanceIdentifier, original_error=e
            )
        return f"deletion protection detected, modifyDBInstance() in progress, current aws rds status is {status}"
