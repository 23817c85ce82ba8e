"""
Credential values used to open AWS SDK sessions.

Credentials are re-derived on every provisioning attempt and never cached
beyond it; only the secrets the credential managers themselves manage
outlive an invocation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

import boto3

ROLE_SESSION_NAME = "cloud-resource-operator"


class AWSCredentials(ABC):
    """Uniform handle for both credential forms."""

    @abstractmethod
    def session(self, region: str) -> boto3.Session:
        """Open a boto3 session in region."""


@dataclass
class StaticCredentials(AWSCredentials):
    """Access key pair minted through a credential request."""
    access_key_id: str
    secret_access_key: str = field(repr=False)

    def session(self, region: str) -> boto3.Session:
        return boto3.Session(
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            region_name=region,
        )


@dataclass
class RoleCredentials(AWSCredentials):
    """Pre-provisioned role identity plus a projected service account token."""
    role_arn: str
    token_file_path: str
    session_name: Optional[str] = None

    def _read_token(self) -> str:
        with open(self.token_file_path, "r", encoding="utf-8") as token_file:
            return token_file.read().strip()

    def session(self, region: str) -> boto3.Session:
        sts_client = boto3.client("sts", region_name=region)
        response = sts_client.assume_role_with_web_identity(
            RoleArn=self.role_arn,
            RoleSessionName=self.session_name or ROLE_SESSION_NAME,
            WebIdentityToken=self._read_token(),
        )
        temporary = response["Credentials"]
        return boto3.Session(
            aws_access_key_id=temporary["AccessKeyId"],
            aws_secret_access_key=temporary["SecretAccessKey"],
            aws_session_token=temporary["SessionToken"],
            region_name=region,
        )
