"""Utility modules for the cloud resource operator."""

from cloudresources.utils.naming import (
    DEFAULT_AWS_IDENTIFIER_LENGTH,
    build_infra_name,
    build_infra_name_from_record,
    build_timestamped_infra_name,
    shorten_string,
)
from cloudresources.utils.retry import RetryPolicy
from cloudresources.utils.security import generate_password

__all__ = [
    "DEFAULT_AWS_IDENTIFIER_LENGTH",
    "build_infra_name",
    "build_infra_name_from_record",
    "build_timestamped_infra_name",
    "shorten_string",
    "RetryPolicy",
    "generate_password",
]
