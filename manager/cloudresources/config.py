import logging
import os

logger = logging.getLogger(__name__)


def _int_env(name, default):
    """Read an integer environment variable, falling back to default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid value {raw!r} for {name}, using default {default}")
        return default


class Config:
    """Base configuration class with common settings."""

    # Kubernetes client settings
    KUBE_IN_CLUSTER = os.getenv("KUBE_IN_CLUSTER", "False").lower() == "true"
    KUBECONFIG = os.getenv("KUBECONFIG", "")

    # Namespaces
    WATCH_NAMESPACE = os.getenv("WATCH_NAMESPACE", "cloud-resource-operator")
    CONFIG_NAMESPACE = os.getenv("CONFIG_NAMESPACE", "kube-system")

    # Strategy config maps
    PROVIDER_CONFIG_MAP = os.getenv("PROVIDER_CONFIG_MAP", "cloud-resource-config")
    AWS_STRATEGY_CONFIG_MAP = os.getenv(
        "AWS_STRATEGY_CONFIG_MAP", "cloud-resources-aws-strategies"
    )
    OPENSHIFT_STRATEGY_CONFIG_MAP = os.getenv(
        "OPENSHIFT_STRATEGY_CONFIG_MAP", "cloud-resources-openshift-strategies"
    )

    # AWS settings
    DEFAULT_REGION = os.getenv("DEFAULT_REGION", "eu-west-1")
    TAG_KEY_PREFIX = os.getenv("TAG_KEY_PREFIX", "integreatly.org/")
    # "request" for CredentialsRequest minted keys, "sts" for role federation
    CREDENTIAL_MODE = os.getenv("CREDENTIAL_MODE", "request").lower()

    # Requeue intervals in seconds
    RECONCILE_PERIOD = _int_env("RECONCILE_PERIOD", 300)
    SHORT_REQUEUE = _int_env("SHORT_REQUEUE", 30)

    # Bounded polling for eventually consistent provider reads
    POLL_INTERVAL = _int_env("POLL_INTERVAL", 5)
    POLL_TIMEOUT = _int_env("POLL_TIMEOUT", 300)

    # Controller loop
    LOOP_INTERVAL = _int_env("LOOP_INTERVAL", 5)

    # Logging settings
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


class DevelopmentConfig(Config):
    """Development configuration."""

    DEBUG = True
    TESTING = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")


class TestingConfig(Config):
    """Testing configuration."""

    TESTING = True
    DEBUG = True
    KUBE_IN_CLUSTER = False

    # Never wait in tests
    POLL_INTERVAL = 0
    POLL_TIMEOUT = 0


class ProductionConfig(Config):
    """Production configuration."""

    DEBUG = False
    TESTING = False
    KUBE_IN_CLUSTER = os.getenv("KUBE_IN_CLUSTER", "True").lower() == "true"


# Configuration dictionary for easy selection
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}


def get_config(config_name=None):
    """Get configuration class based on environment.

    Args:
        config_name: Configuration name ('development', 'testing', 'production').
                    If None, uses CRO_ENV environment variable or defaults to 'development'.

    Returns:
        Configuration class.
    """
    if config_name is None:
        config_name = os.getenv("CRO_ENV", "development")

    config_class = config.get(config_name, DevelopmentConfig)
    return config_class
