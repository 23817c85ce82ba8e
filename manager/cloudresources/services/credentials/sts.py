"""Federated role credentials for clusters running with short-lived tokens."""

import logging

from cloudresources.errors import CredentialError

from .base import RoleCredentials

logger = logging.getLogger(__name__)

DEFAULT_STS_CREDENTIAL_SECRET_NAME = "sts-credentials"
DEFAULT_ROLE_ARN_KEY_NAME = "role_arn"
DEFAULT_TOKEN_PATH = "/var/run/secrets/openshift/serviceaccount/token"


class STSCredentialManager:
    """
    Reads a pre-provisioned role identity.

    The role is granted out of band, so there is nothing to request or poll;
    bucket owners share the operator's role.
    """

    def __init__(self, store, secret_name: str = DEFAULT_STS_CREDENTIAL_SECRET_NAME,
                 token_path: str = DEFAULT_TOKEN_PATH):
        self.store = store
        self.secret_name = secret_name
        self.token_path = token_path

    def reconcile_provider_credentials(self, namespace: str) -> RoleCredentials:
        data = self.store.get_secret(namespace, self.secret_name)
        if data is None:
            raise CredentialError(
                f"failed to get sts credentials secret {self.secret_name}", resource_id=self.secret_name
            )
        role_arn = data.get(DEFAULT_ROLE_ARN_KEY_NAME, "")
        if not role_arn:
            raise CredentialError(
                f"{DEFAULT_ROLE_ARN_KEY_NAME} key is undefined in secret {self.secret_name}",
                resource_id=self.secret_name,
            )
        return RoleCredentials(role_arn=role_arn, token_file_path=self.token_path)

    def reconcile_bucket_owner_credentials(self, name: str, namespace: str, bucket: str) -> RoleCredentials:
        logger.info(f"Using operator role for bucket {bucket} owner credentials {name}")
        return self.reconcile_provider_credentials(namespace)

    def delete_bucket_owner_credentials(self, name: str, namespace: str) -> None:
        logger.debug(f"No credential request to delete for {name}, role credentials are shared")
