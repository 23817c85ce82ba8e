"""
Cluster network discovery for AWS-backed resources.

Databases and caches are placed in the cluster's own VPC. This module finds
that VPC and its subnets, classifies them, reports which network topology is
in effect, and carves /28 blocks out of the VPC range.
"""

import ipaddress
import logging
from typing import Any, Dict, List, Optional, Tuple

from botocore.exceptions import ClientError

from cloudresources.errors import NetworkError
from cloudresources.utils.naming import build_infra_name
from cloudresources.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_ORGANIZATION_TAG = "integreatly.org/"
DEFAULT_SUBNET_POSTFIX = "subnet-group"
DEFAULT_SECURITY_GROUP_POSTFIX = "security-group"
DEDICATED_SUBNET_PREFIX = 28
RESERVED_BLOCK_COUNT = 2
PRIVATE_SUBNET_TAG_KEY = "kubernetes.io/role/internal-elb"
SUBNET_CONFLICT_CODE = "InvalidSubnet.Conflict"


def allocate_subnet_blocks(cidr: str, prefix: int = DEDICATED_SUBNET_PREFIX) -> List[ipaddress.IPv4Network]:
    """
    Split a network into every aligned block of the given prefix.

    Args:
        cidr: Network in CIDR notation, e.g. "10.0.0.0/16"
        prefix: Prefix length of the blocks to carve out

    Returns:
        Disjoint blocks in descending address order

    Raises:
        NetworkError: If the cidr is invalid or has no room for a smaller block
    """
    try:
        network = ipaddress.ip_network(cidr, strict=False)
    except ValueError as e:
        raise NetworkError(f"returned cidr {cidr} from aws is not valid", original_error=e)

    if network.prefixlen >= prefix:
        raise NetworkError(f"cidr {cidr} is too small to allocate /{prefix} subnets from")

    return sorted(network.subnets(new_prefix=prefix), reverse=True)


def _tag_values(resource: Dict[str, Any]) -> List[str]:
    return [tag.get("Value", "") for tag in resource.get("Tags", [])]


def _tag_keys(resource: Dict[str, Any]) -> List[str]:
    return [tag.get("Key", "") for tag in resource.get("Tags", [])]


class NetworkResolver:
    """Finds and classifies the cluster VPC and its subnets."""

    def __init__(self, ec2_client, cluster_id: str,
                 organization_tag: str = DEFAULT_ORGANIZATION_TAG,
                 retry_policy: Optional[RetryPolicy] = None):
        """
        Initialize network resolver.

        Args:
            ec2_client: boto3 EC2 client
            cluster_id: Cluster infrastructure name
            organization_tag: Prefix of tag keys set by this operator
            retry_policy: Poll policy for the first list call
        """
        self.ec2_client = ec2_client
        self.cluster_id = cluster_id
        self.organization_tag = organization_tag
        self.retry_policy = retry_policy or RetryPolicy()

    @property
    def legacy_tag_key(self) -> str:
        return f"{self.organization_tag}clusterID"

    def get_vpc(self) -> Dict[str, Any]:
        """Cluster VPC, identified by a tag value of "<clusterID>-vpc"."""
        logger.info("Finding cluster vpc")
        vpcs = self.ec2_client.describe_vpcs().get("Vpcs", [])
        expected = f"{self.cluster_id}-vpc"
        for vpc in vpcs:
            if expected in _tag_values(vpc):
                return vpc
        raise NetworkError("error, no vpc found", resource_id=expected)

    def get_cidr(self) -> Tuple[str, str]:
        """Returns (vpc id, cidr block) of the cluster VPC."""
        vpc = self.get_vpc()
        return vpc["VpcId"], vpc["CidrBlock"]

    def _list_subnets(self) -> List[Dict[str, Any]]:
        # first provider call after a credential handshake, keys may not be live yet
        response = self.retry_policy.call(self.ec2_client.describe_subnets, description="describe subnets")
        return response.get("Subnets", [])

    def get_vpc_subnets(self) -> List[Dict[str, Any]]:
        """All subnets belonging to the cluster VPC."""
        logger.info("Gathering cluster vpc and subnet information")
        subnets = self._list_subnets()
        vpc = self.get_vpc()
        associated = [s for s in subnets if s.get("VpcId") == vpc["VpcId"]]
        if not associated:
            raise NetworkError("error, unable to find subnets associated with cluster vpc", resource_id=vpc["VpcId"])
        return associated

    def get_private_subnets(self, subnets: Optional[List[Dict[str, Any]]] = None) -> List[Dict[str, Any]]:
        """Cluster VPC subnets with "private" in any tag value or the internal-elb role tag."""
        if subnets is None:
            subnets = self.get_vpc_subnets()
        return [
            subnet for subnet in subnets
            if PRIVATE_SUBNET_TAG_KEY in _tag_keys(subnet)
            or any("private" in value.lower() for value in _tag_values(subnet))
        ]

    def get_availability_zones(self) -> List[Dict[str, Any]]:
        return self.ec2_client.describe_availability_zones().get("AvailabilityZones", [])

    def get_private_subnet_ids(self) -> List[str]:
        """
        Ids of the private subnets in the cluster VPC.

        Every available zone without a private subnet gets one carved out of
        the VPC range first.

        Raises:
            NetworkError: If no private subnet exists or one cannot be created
        """
        logger.info("Gathering all private subnets in cluster vpc")
        vpc = self.get_vpc()
        subnets = self.get_vpc_subnets()
        private = self.get_private_subnets(subnets)

        for zone in self.get_availability_zones():
            zone_name = zone.get("ZoneName", "")
            if zone.get("State") != "available":
                continue
            if any(s.get("AvailabilityZone") == zone_name for s in private):
                continue
            logger.info(f"No private subnet found in {zone_name}")
            subnet = self.create_private_subnet(vpc, zone_name, subnets)
            subnets.append(subnet)
            private.append(subnet)

        subnet_ids = [s["SubnetId"] for s in private]
        if not subnet_ids:
            raise NetworkError("failed to get list of private subnet ids")
        return subnet_ids

    def create_private_subnet(self, vpc: Dict[str, Any], zone_name: str,
                              subnets: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Create and tag a private /28 subnet in a zone.

        Candidate blocks skip the reserved ones and any block overlapping an
        existing subnet. A block the provider still reports as conflicting is
        skipped as well.
        """
        vpc_id = vpc["VpcId"]
        logger.info(f"Creating private subnet in {vpc_id}")
        taken = [
            ipaddress.ip_network(s["CidrBlock"], strict=False) for s in subnets if s.get("CidrBlock")
        ]

        for block in allocate_subnet_blocks(vpc["CidrBlock"])[RESERVED_BLOCK_COUNT:]:
            if any(block.overlaps(existing) for existing in taken):
                continue
            try:
                subnet = self.ec2_client.create_subnet(
                    AvailabilityZone=zone_name,
                    CidrBlock=str(block),
                    VpcId=vpc_id,
                )["Subnet"]
            except ClientError as e:
                if e.response.get("Error", {}).get("Code") == SUBNET_CONFLICT_CODE:
                    logger.info(f"{block} conflicts with a current subnet, trying again")
                    continue
                raise NetworkError("error creating new subnet", resource_id=vpc_id, original_error=e)
            self.tag_private_subnet(subnet)
            logger.info(f"Created new subnet {block} in {vpc_id}")
            return subnet

        raise NetworkError(f"no free address range for a private subnet in {zone_name}", resource_id=vpc_id)

    def tag_private_subnet(self, subnet: Dict[str, Any]) -> None:
        subnet_id = subnet["SubnetId"]
        logger.info(f"Adding tags to subnet {subnet_id}")
        tags = [
            {"Key": PRIVATE_SUBNET_TAG_KEY, "Value": "1"},
            {"Key": self.legacy_tag_key, "Value": self.cluster_id},
        ]
        try:
            self.ec2_client.create_tags(Resources=[subnet_id], Tags=tags)
        except ClientError as e:
            raise NetworkError("failed to tag subnet", resource_id=subnet_id, original_error=e)
        subnet["Tags"] = subnet.get("Tags", []) + tags

    def get_legacy_subnets(self) -> List[Dict[str, Any]]:
        """Subnets carrying the "<organizationTag>clusterID" key."""
        return [s for s in self.get_vpc_subnets() if self.legacy_tag_key in _tag_keys(s)]

    def is_enabled(self) -> bool:
        """
        True when dedicated networking may be used.

        Any subnet tagged by this operator means the older shared topology is
        in place, and resources must stay bundled in the cluster VPC.
        """
        legacy = self.get_legacy_subnets()
        logger.info(f"Found {len(legacy)} legacy subnets in cluster vpc")
        return len(legacy) == 0

    def create_network(self) -> None:
        # TODO: provision a dedicated vpc from the top RESERVED_BLOCK_COUNT blocks and peer it with the cluster vpc
        raise NetworkError("dedicated network creation is not supported")

    def configure_security_group(self) -> str:
        """
        Ensure the resource security group exists and admits the VPC range.

        Returns:
            Security group id
        """
        sec_name = build_infra_name(self.cluster_id, DEFAULT_SECURITY_GROUP_POSTFIX)
        logger.info(f"Setting resource security group {sec_name}")
        vpc_id, cidr = self.get_cidr()

        groups = self.ec2_client.describe_security_groups(
            Filters=[
                {"Name": "group-name", "Values": [sec_name]},
                {"Name": "vpc-id", "Values": [vpc_id]},
            ]
        ).get("SecurityGroups", [])
        found = next((g for g in groups if g.get("GroupName") == sec_name), None)

        if found is None:
            logger.info(f"Creating security group from cluster {self.cluster_id}")
            group_id = self.ec2_client.create_security_group(
                Description=f"security group for cluster {self.cluster_id}",
                GroupName=sec_name,
                VpcId=vpc_id,
            )["GroupId"]
            permissions = []
        else:
            group_id = found["GroupId"]
            permissions = found.get("IpPermissions", [])

        for permission in permissions:
            ranges = [r.get("CidrIp") for r in permission.get("IpRanges", [])]
            if permission.get("IpProtocol") == "-1" and cidr in ranges:
                logger.info("Ip permissions are correct for resource security group")
                return group_id

        logger.info(f"Setting ingress ip permissions for {sec_name}")
        self.ec2_client.authorize_security_group_ingress(
            GroupId=group_id,
            IpPermissions=[{"IpProtocol": "-1", "IpRanges": [{"CidrIp": cidr}]}],
        )
        return group_id
