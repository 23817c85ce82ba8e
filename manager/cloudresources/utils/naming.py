"""
Deterministic naming helpers.

Backing cloud resources are located purely by name, so every name built here
must come out identical for the same inputs on every invocation.
"""

import base64
import hashlib
import re
from datetime import datetime, timezone

DEFAULT_AWS_IDENTIFIER_LENGTH = 40

_NON_ALPHANUMERIC = re.compile(r"[^a-zA-Z0-9]+")
_HASH_LENGTH = 4


def shorten_string(s: str, n: int) -> str:
    """
    Cut a string to n characters while keeping a reference to the original.

    Non-alphanumeric characters are removed first. Strings that still exceed
    the limit keep their first n-5 characters followed by a hyphen and the
    first four characters of the base32 SHA-256 digest of the full string.

    Args:
        s: String to shorten
        n: Maximum length

    Returns:
        Lowercase shortened string
    """
    s = _NON_ALPHANUMERIC.sub("", s)
    if len(s) < n:
        return s

    cut_size = n - (_HASH_LENGTH + 1)
    if n < _HASH_LENGTH + 1:
        cut_size = len(s)

    digest = hashlib.sha256(s.encode("utf-8")).digest()
    hashed = base64.b32encode(digest).decode("ascii")
    return f"{s[:cut_size]}-{hashed[:_HASH_LENGTH]}".lower()


def format_creation_timestamp(created: datetime) -> str:
    """Render a creation timestamp in the form used inside snapshot names."""
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    created = created.astimezone(timezone.utc)
    return created.strftime("%Y-%m-%d %H:%M:%S +0000 UTC")


def build_infra_name(cluster_id: str, postfix: str, n: int = DEFAULT_AWS_IDENTIFIER_LENGTH) -> str:
    """Name for a cluster-wide infrastructure object, e.g. a subnet group."""
    return shorten_string(f"{cluster_id}-{postfix}", n)


def build_infra_name_from_record(cluster_id: str, namespace: str, name: str,
                                 n: int = DEFAULT_AWS_IDENTIFIER_LENGTH) -> str:
    """Name for the backing resource owned by one intent record."""
    return shorten_string(f"{cluster_id}{namespace}{name}", n)


def build_timestamped_infra_name(cluster_id: str, namespace: str, name: str, created: datetime,
                                 n: int = DEFAULT_AWS_IDENTIFIER_LENGTH) -> str:
    """Name for a point-in-time object such as a snapshot."""
    return shorten_string(
        f"{cluster_id}{namespace}{name}{format_creation_timestamp(created)}", n
    )
