"""Shared fixtures for the cloud resource operator tests."""
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from cloudresources.models.enums import ResourceType
from cloudresources.models.records import IntentRecord, SecretRef
from cloudresources.services.network import DEFAULT_SECURITY_GROUP_POSTFIX
from cloudresources.services.provisioning.base import is_retryable_aws_error
from cloudresources.utils.naming import build_infra_name
from cloudresources.utils.retry import RetryPolicy

CLUSTER_ID = "test-cluster"
VPC_ID = "vpc-0123"
VPC_CIDR = "10.0.0.0/16"
REGION = "eu-west-1"


def make_client_error(code, operation="Operation"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def client_error():
    """Factory for botocore ClientError instances with a given error code."""
    return make_client_error


@pytest.fixture
def make_record():
    """Factory for intent records with sensible defaults."""
    def _make(kind=ResourceType.POSTGRES, name="example", namespace="cro-test", **kwargs):
        kwargs.setdefault("tier", "production")
        kwargs.setdefault("secret_ref", SecretRef(name=f"{name}-sec"))
        kwargs.setdefault("creation_timestamp", datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc))
        kwargs.setdefault("labels", {"productName": "test-product"})
        return IntentRecord(kind=kind, name=name, namespace=namespace, **kwargs)
    return _make


@pytest.fixture
def store():
    """Kubernetes store double with an empty namespace."""
    mock_store = MagicMock()
    mock_store.get_cluster_id.return_value = CLUSTER_ID
    mock_store.get_cluster_region.return_value = ""
    mock_store.get_secret.return_value = None
    return mock_store


@pytest.fixture
def no_wait_retry():
    """Retry policy which gives up after the first failed attempt without sleeping."""
    return RetryPolicy(interval=1, timeout=0, retryable=is_retryable_aws_error, sleep=lambda seconds: None)


@pytest.fixture
def ec2_client():
    """EC2 client double describing a cluster VPC with one private and one public subnet."""
    client = MagicMock()
    client.describe_vpcs.return_value = {
        "Vpcs": [
            {"VpcId": "vpc-other", "CidrBlock": "172.16.0.0/16", "Tags": [{"Key": "Name", "Value": "other-vpc"}]},
            {"VpcId": VPC_ID, "CidrBlock": VPC_CIDR, "Tags": [{"Key": "Name", "Value": f"{CLUSTER_ID}-vpc"}]},
        ]
    }
    client.describe_subnets.return_value = {
        "Subnets": [
            {
                "SubnetId": "subnet-private",
                "VpcId": VPC_ID,
                "AvailabilityZone": "eu-west-1a",
                "CidrBlock": "10.0.0.0/20",
                "Tags": [{"Key": "Name", "Value": f"{CLUSTER_ID}-Private-eu-west-1a"}],
            },
            {
                "SubnetId": "subnet-public",
                "VpcId": VPC_ID,
                "AvailabilityZone": "eu-west-1a",
                "CidrBlock": "10.0.16.0/20",
                "Tags": [{"Key": "Name", "Value": f"{CLUSTER_ID}-public-eu-west-1a"}],
            },
            {
                "SubnetId": "subnet-elsewhere",
                "VpcId": "vpc-other",
                "Tags": [{"Key": "Name", "Value": "private-elsewhere"}],
            },
        ]
    }
    client.describe_availability_zones.return_value = {
        "AvailabilityZones": [{"ZoneName": "eu-west-1a", "State": "available"}]
    }
    client.describe_security_groups.return_value = {
        "SecurityGroups": [
            {
                "GroupName": build_infra_name(CLUSTER_ID, DEFAULT_SECURITY_GROUP_POSTFIX),
                "GroupId": "sg-0123",
                "IpPermissions": [{"IpProtocol": "-1", "IpRanges": [{"CidrIp": VPC_CIDR}]}],
            }
        ]
    }
    return client


@pytest.fixture
def aws_clients(ec2_client):
    """boto3 client doubles keyed by service name."""
    return {
        "ec2": ec2_client,
        "rds": MagicMock(),
        "elasticache": MagicMock(),
        "s3": MagicMock(),
        "sts": MagicMock(),
    }


@pytest.fixture
def credential_manager(aws_clients):
    """Credential manager whose sessions hand out the aws_clients doubles."""
    manager = MagicMock()
    session = MagicMock()
    session.client.side_effect = lambda service: aws_clients[service]
    manager.reconcile_provider_credentials.return_value.session.return_value = session
    return manager
