"""
Security utilities for the Cloud Resource Operator.

Provides password generation for co-managed credential secrets.
"""

import uuid


def generate_password() -> str:
    """
    Generate a random 32-character password.

    Returns:
        A random uuid4 token with its hyphen separators stripped
    """
    return str(uuid.uuid4()).replace("-", "")
