"""AWS S3 provisioner for blobstorage intent records."""

import logging
from typing import Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from cloudresources.errors import RetryTimeout
from cloudresources.models.records import IntentRecord
from cloudresources.schemas.strategy import S3BucketConfig, StrategyConfig
from cloudresources.services.credentials.base import StaticCredentials

from .base import DEFAULT_FINALIZER, AWSProvisioner, BlobStorageDeploymentDetails, is_client_error

logger = logging.getLogger(__name__)

BLOBSTORAGE_PROVIDER_NAME = "aws-s3"

# us-east-1 is the only region that rejects an explicit location constraint
DEFAULT_LOCATION_REGION = "us-east-1"


def build_end_user_credentials_name(bucket: str) -> str:
    return f"cro-aws-s3-{bucket}-creds"


class AWSBlobStorageProvisioner(AWSProvisioner):
    """Provisions blobstorage intent records as S3 buckets with scoped end-user keys."""

    provider_name = BLOBSTORAGE_PROVIDER_NAME

    def build_bucket_config(self, record: IntentRecord, strategy_config: StrategyConfig) -> S3BucketConfig:
        config = self._decode(S3BucketConfig, strategy_config.create_strategy, "s3 bucket")
        if config.Bucket is None:
            logger.info("Getting cluster id from infrastructure for bucket naming")
            config.Bucket = self.resource_name(self.store.get_cluster_id(), record)
        if config.CreateBucketConfiguration is None and strategy_config.region != DEFAULT_LOCATION_REGION:
            config.CreateBucketConfiguration = {"LocationConstraint": strategy_config.region}
        return config

    def create(self, record: IntentRecord,
               strategy_config: StrategyConfig) -> Tuple[Optional[BlobStorageDeploymentDetails], str]:
        """
        Ensure the bucket and its end-user credentials exist.

        Returns:
            Tuple of (deployment details, status message)
        """
        self.store.add_finalizer(record, DEFAULT_FINALIZER)

        logger.info(f"Getting aws s3 bucket config for blob storage instance {record.name}")
        config = self.build_bucket_config(record, strategy_config)

        end_user_creds_name = build_end_user_credentials_name(config.Bucket)
        logger.info(
            f"Creating end-user credentials with name {end_user_creds_name} for managing s3 bucket {config.Bucket}"
        )
        end_user_creds = self.credential_manager.reconcile_bucket_owner_credentials(
            end_user_creds_name, record.namespace, config.Bucket
        )

        session = self._session(record, strategy_config.region)
        logger.info(f"Reconciling aws s3 bucket {config.Bucket}")
        msg = self.reconcile_bucket_create(session.client("s3"), config)

        key_id, secret_key = "", ""
        if isinstance(end_user_creds, StaticCredentials):
            key_id, secret_key = end_user_creds.access_key_id, end_user_creds.secret_access_key

        logger.info(f"Creation handler for blob storage instance {record.name} in namespace {record.namespace} finished")
        return BlobStorageDeploymentDetails(
            bucket_name=config.Bucket,
            credential_key_id=key_id,
            credential_secret_key=secret_key,
            bucket_region=strategy_config.region,
        ), msg

    def reconcile_bucket_create(self, s3_client, config: S3BucketConfig) -> str:
        logger.info("Listing existing aws s3 buckets")
        try:
            buckets = self._list(s3_client.list_buckets, "Buckets", "list s3 buckets")
        except (BotoCoreError, ClientError, RetryTimeout) as e:
            raise self._error(
                "failed to list existing aws s3 buckets, credentials could be reconciling",
                resource_id=config.Bucket,
                original_error=e,
            )

        if any(b["Name"] == config.Bucket for b in buckets):
            return f"using bucket {config.Bucket}"

        logger.info(f"Bucket {config.Bucket} not found, creating bucket")
        try:
            s3_client.create_bucket(**config.to_request())
        except (BotoCoreError, ClientError) as e:
            raise self._error(f"failed to create s3 bucket {config.Bucket}", resource_id=config.Bucket, original_error=e)

        logger.info("Reconcile for aws s3 bucket completed successfully, bucket created")
        return "successfully created"

    def delete(self, record: IntentRecord, strategy_config: StrategyConfig) -> str:
        """
        Remove the bucket and its end-user credentials.

        Returns:
            Empty status message, bucket deletion is synchronous
        """
        logger.info(f"Deleting blob storage instance {record.name} via aws s3")
        config = self.build_bucket_config(record, strategy_config)
        session = self._session(record, strategy_config.region)
        s3_client = session.client("s3")

        try:
            buckets = self._list(s3_client.list_buckets, "Buckets", "list s3 buckets")
        except (BotoCoreError, ClientError, RetryTimeout) as e:
            raise self._error("error getting s3 buckets", resource_id=config.Bucket, original_error=e)

        if any(b["Name"] == config.Bucket for b in buckets):
            try:
                s3_client.delete_bucket(Bucket=config.Bucket)
            except ClientError as e:
                if not is_client_error(e, "NoSuchBucket"):
                    raise self._error("failed to delete s3 bucket", resource_id=config.Bucket, original_error=e)

        end_user_creds_name = build_end_user_credentials_name(config.Bucket)
        self.credential_manager.delete_bucket_owner_credentials(end_user_creds_name, record.namespace)

        self.store.remove_finalizer(record, DEFAULT_FINALIZER)
        return ""
