"""
Credential request handshake.

Short-lived access keys are requested by submitting a CredentialsRequest
carrying an explicit permission statement list. The cloud credential
operator mints the keys into the target secret and marks the request as
provisioned; until then the secret may not exist yet.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from cloudresources.errors import CredentialError, RetryTimeout
from cloudresources.utils.retry import RetryPolicy

from .base import StaticCredentials

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_CREDENTIAL_NAME = "cloud-resources-aws-credentials"
CREDENTIALS_KEY_ID_NAME = "aws_access_key_id"
CREDENTIALS_SECRET_KEY_NAME = "aws_secret_access_key"

# Permissions the operator itself needs to manage every resource kind
OPERATOR_STATEMENT_ENTRIES = [
    {
        "effect": "Allow",
        "action": [
            "s3:CreateBucket",
            "s3:DeleteBucket",
            "s3:ListBucket",
            "s3:ListAllMyBuckets",
            "s3:GetObject",
            "s3:PutBucketTagging",
            "elasticache:CreateReplicationGroup",
            "elasticache:DeleteReplicationGroup",
            "elasticache:DescribeReplicationGroups",
            "elasticache:ModifyReplicationGroup",
            "elasticache:DescribeCacheClusters",
            "elasticache:DescribeSnapshots",
            "elasticache:CreateSnapshot",
            "elasticache:DeleteSnapshot",
            "elasticache:CreateCacheSubnetGroup",
            "elasticache:DescribeCacheSubnetGroups",
            "elasticache:AddTagsToResource",
            "rds:DescribeDBInstances",
            "rds:CreateDBInstance",
            "rds:DeleteDBInstance",
            "rds:ModifyDBInstance",
            "rds:DescribeDBSnapshots",
            "rds:CreateDBSnapshot",
            "rds:DeleteDBSnapshot",
            "rds:CreateDBSubnetGroup",
            "rds:DescribeDBSubnetGroups",
            "rds:AddTagsToResource",
            "ec2:DescribeVpcs",
            "ec2:DescribeSubnets",
            "ec2:DescribeSecurityGroups",
            "ec2:CreateSecurityGroup",
            "ec2:AuthorizeSecurityGroupIngress",
            "ec2:DescribeAvailabilityZones",
            "ec2:CreateTags",
            "sts:GetCallerIdentity",
        ],
        "resource": "*",
    }
]


def build_bucket_statement_entries(bucket: str) -> List[Dict[str, Any]]:
    """Statement entries granting full access to one bucket and its objects."""
    return [
        {"effect": "Allow", "action": ["s3:*"], "resource": f"arn:aws:s3:::{bucket}"},
        {"effect": "Allow", "action": ["s3:*"], "resource": f"arn:aws:s3:::{bucket}/*"},
    ]


class CredentialRequestManager:
    """Obtains access keys through CredentialsRequest objects."""

    def __init__(self, store, retry_policy: Optional[RetryPolicy] = None,
                 provider_credential_name: str = DEFAULT_PROVIDER_CREDENTIAL_NAME):
        self.store = store
        self.retry_policy = retry_policy or RetryPolicy()
        self.provider_credential_name = provider_credential_name

    def reconcile_provider_credentials(self, namespace: str) -> StaticCredentials:
        """Credentials for the operator's own provider permissions."""
        _, credentials = self.reconcile_credentials(
            self.provider_credential_name, namespace, OPERATOR_STATEMENT_ENTRIES
        )
        return credentials

    def reconcile_bucket_owner_credentials(self, name: str, namespace: str, bucket: str) -> StaticCredentials:
        """Credentials scoped to a single bucket, handed to its end user."""
        _, credentials = self.reconcile_credentials(name, namespace, build_bucket_statement_entries(bucket))
        return credentials

    def reconcile_credentials(self, name: str, namespace: str,
                              entries: List[Dict[str, Any]]) -> Tuple[Dict[str, Any], StaticCredentials]:
        """
        Submit a credential request and wait for its keys.

        Args:
            name: Request name, also used as the target secret name
            namespace: Namespace for both request and secret
            entries: Permission statement entries

        Returns:
            Tuple of (credential request object, credentials)

        Raises:
            CredentialError: If the request is never provisioned or the
                secret lacks a key
        """
        spec = {
            "secretRef": {"name": name, "namespace": namespace},
            "providerSpec": {
                "apiVersion": "cloudcredential.openshift.io/v1",
                "kind": "AWSProviderSpec",
                "statementEntries": entries,
            },
        }
        logger.info(f"Reconciling aws credential request {name} in namespace {namespace}")
        self.store.apply_credentials_request(namespace, name, spec)

        provisioned = {}

        def is_provisioned() -> bool:
            request = self.store.get_credentials_request(namespace, name)
            if request is None:
                return False
            provisioned["request"] = request
            return bool(request.get("status", {}).get("provisioned", False))

        try:
            self.retry_policy.poll(is_provisioned, description=f"credential request {name}")
        except RetryTimeout as e:
            raise CredentialError(
                "timed out waiting for credential request to become provisioned",
                resource_id=name,
                original_error=e,
            )

        request = provisioned["request"]
        secret_ref = request.get("spec", {}).get("secretRef") or {"name": name, "namespace": namespace}
        return request, self._read_credentials_secret(
            secret_ref.get("namespace") or namespace, secret_ref["name"]
        )

    def _read_credentials_secret(self, namespace: str, name: str) -> StaticCredentials:
        data = self.store.get_secret(namespace, name)
        if data is None:
            raise CredentialError(f"failed to get aws credentials secret {name}", resource_id=name)

        access_key_id = data.get(CREDENTIALS_KEY_ID_NAME, "")
        secret_access_key = data.get(CREDENTIALS_SECRET_KEY_NAME, "")
        if not access_key_id:
            raise CredentialError(f"aws access key id is undefined in secret {name}", resource_id=name)
        if not secret_access_key:
            raise CredentialError(f"aws secret access key is undefined in secret {name}", resource_id=name)
        return StaticCredentials(access_key_id=access_key_id, secret_access_key=secret_access_key)

    def delete_bucket_owner_credentials(self, name: str, namespace: str) -> None:
        logger.info(f"Deleting end-user credential request {name} in namespace {namespace}")
        self.store.delete_credentials_request(namespace, name)
