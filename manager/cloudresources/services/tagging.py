"""
Resource tags applied to backing cloud resources.

Every resource the operator manages, and every snapshot of it, carries the
same small set of tags so it can be traced back to its cluster and intent
record from the provider console.
"""

import logging
from typing import Dict, List

from cloudresources.models.records import IntentRecord

logger = logging.getLogger(__name__)

# AWS limits on tag key and value length
MAX_TAG_KEY_LENGTH = 128
MAX_TAG_VALUE_LENGTH = 256


def build_default_tags(record: IntentRecord, cluster_id: str, organization_tag: str) -> Dict[str, str]:
    """
    Tags identifying the owner of a backing resource.

    Args:
        record: Owning intent record
        cluster_id: Cluster infrastructure name
        organization_tag: Prefix for every tag key

    Returns:
        Dictionary of tag key to value
    """
    tags = {
        f"{organization_tag}clusterID": cluster_id,
        f"{organization_tag}resource-type": record.deployment_type,
        f"{organization_tag}resource-name": record.name,
    }
    if record.product_name:
        tags[f"{organization_tag}product-name"] = record.product_name

    for key, value in tags.items():
        if len(key) > MAX_TAG_KEY_LENGTH:
            raise ValueError(f"Tag key '{key}' exceeds {MAX_TAG_KEY_LENGTH} characters")
        if len(value) > MAX_TAG_VALUE_LENGTH:
            raise ValueError(f"Tag value for '{key}' exceeds {MAX_TAG_VALUE_LENGTH} characters")
    return tags


def format_aws_tags(tags: Dict[str, str]) -> List[Dict[str, str]]:
    """Format tags dict to AWS tag list format."""
    return [{"Key": k, "Value": v} for k, v in tags.items()]
