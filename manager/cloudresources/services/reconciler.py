"""
Convergence state machine.

One call to ``Reconciler.reconcile`` drives one intent record a single step
toward its desired state and returns the number of seconds after which it
should be reconciled again, or None when no requeue is needed.

Phase transitions:
    InProgress -> Complete | Failed | Paused
    any -> DeleteInProgress -> (record removed)
"""

import logging
from typing import Optional

from cloudresources.errors import CloudResourceError, ConfigNotFound, UnsupportedStrategy
from cloudresources.models.enums import DeploymentStrategy, Phase
from cloudresources.models.records import IntentRecord
from cloudresources.schemas.strategy import StrategyConfig
from cloudresources.services.provisioning.providers import AwsProvider, FallbackProvider, get_provider
from cloudresources.services.strategy import StrategyResolver

logger = logging.getLogger(__name__)

DEFAULT_RECONCILE_PERIOD = 300
DEFAULT_SHORT_REQUEUE = 30


def status_message(error: Exception) -> str:
    """Human message for a record status, never a traceback."""
    if isinstance(error, CloudResourceError):
        return error.message
    return str(error)


class Reconciler:
    """
    Drives intent records through their phases.

    Attributes:
        store: Control-plane store
        resolver: Strategy resolver
        aws: AWS provider
        fallback: In-cluster provider
        reconcile_period: Requeue delay for settled records, used for drift detection
        short_requeue: Requeue delay for records still converging
    """

    def __init__(
        self,
        store,
        resolver: StrategyResolver,
        aws: AwsProvider,
        fallback: FallbackProvider,
        reconcile_period: int = DEFAULT_RECONCILE_PERIOD,
        short_requeue: int = DEFAULT_SHORT_REQUEUE,
    ):
        self.store = store
        self.resolver = resolver
        self.aws = aws
        self.fallback = fallback
        self.reconcile_period = reconcile_period
        self.short_requeue = short_requeue

    def _set_status(self, record: IntentRecord, phase: Phase, message: str) -> None:
        record.status.phase = phase
        record.status.message = message
        self.store.update_status(record)

    def reconcile(self, record: IntentRecord) -> Optional[int]:
        """
        Run one convergence step for a record.

        Returns:
            Seconds until the next reconcile, or None for no requeue

        Raises:
            CloudResourceError: After setting phase Failed, so the caller can back off
        """
        logger.info(f"Reconciling {record.kind.value} {record.name} in namespace {record.namespace}")
        if record.kind.is_snapshot:
            return self.reconcile_snapshot(record)

        try:
            strategy = self.active_strategy(record)
        except ConfigNotFound as e:
            self._set_status(record, Phase.FAILED, e.message)
            raise

        try:
            provisioner = get_provider(strategy, self.aws, self.fallback).for_kind(record.kind)
        except UnsupportedStrategy as e:
            logger.error(f"{record.kind.value} {record.name}: {e.message}")
            self._set_status(record, Phase.FAILED, e.message)
            return None

        record.status.strategy = strategy
        record.status.provider = provisioner.provider_name

        try:
            resolved = self.resolver.resolve(record.kind, record.tier, record.deployment_type, strategy=strategy)
        except ConfigNotFound as e:
            self._set_status(record, Phase.FAILED, e.message)
            raise

        if record.deletion_requested:
            return self._delete(record, provisioner, resolved.config)

        if record.skip_create:
            logger.info(f"Creation of {record.kind.value} {record.name} is paused")
            self._set_status(record, Phase.PAUSED, "skipping create or update, skipCreate is set")
            return self.reconcile_period

        try:
            result, msg = provisioner.create(record, resolved.config)
        except Exception as e:
            logger.error(f"Failed to create {record.kind.value} {record.name}: {e}")
            self._set_status(record, Phase.FAILED, status_message(e))
            raise

        if result is None:
            self._set_status(record, Phase.IN_PROGRESS, msg)
            return self.short_requeue

        ref = record.connection_secret_ref()
        if ref is not None:
            self.store.upsert_secret(ref.namespace, ref.name, result.data())
            record.status.secret_ref = ref
        self._set_status(record, Phase.COMPLETE, msg)
        return self.reconcile_period

    def active_strategy(self, record: IntentRecord) -> str:
        """
        Strategy the record is served by.

        The first resolved strategy is kept in the record status. A later
        mapping change is logged and ignored.
        """
        desired = self.resolver.resolve_strategy(record.kind, record.deployment_type)
        current = record.status.strategy
        if current and current != desired:
            logger.warning(
                f"Strategy change detected for {record.kind.value} {record.name}, "
                f"keeping {current}, ignoring {desired}"
            )
            return current
        return desired

    def _delete(self, record: IntentRecord, provisioner, strategy_config: StrategyConfig) -> Optional[int]:
        try:
            msg = provisioner.delete(record, strategy_config)
        except Exception as e:
            logger.error(f"Failed to delete {record.kind.value} {record.name}: {e}")
            self._set_status(record, Phase.FAILED, status_message(e))
            raise

        if msg:
            self._set_status(record, Phase.DELETE_IN_PROGRESS, msg)
            return self.short_requeue

        # the finalizer is gone, the record may already be removed
        logger.info(f"Deletion of {record.kind.value} {record.name} complete")
        return None

    def reconcile_snapshot(self, record: IntentRecord) -> Optional[int]:
        """
        Run one convergence step for a snapshot record.

        The owning record decides the strategy and region. Snapshots are only
        supported for the aws strategy.
        """
        owner_kind = record.kind.owner_type
        owner = self.store.get_record(owner_kind, record.namespace, record.resource_name)
        provisioner = self.aws.for_kind(record.kind)

        if record.deletion_requested:
            if owner is None:
                strategy_config = StrategyConfig(region=self.resolver.resolve_region(StrategyConfig()))
            else:
                strategy_config = self._owner_strategy(record, owner)
            return self._delete(record, provisioner, strategy_config)

        if record.status.phase is Phase.COMPLETE:
            logger.info(f"Found existing snapshot for {record.name}")
            return None

        if owner is None:
            msg = f"failed to get {owner_kind.value} resource {record.resource_name}"
            self._set_status(record, Phase.FAILED, msg)
            raise CloudResourceError(msg, resource_id=record.resource_name)

        if owner.status.strategy != DeploymentStrategy.AWS.value:
            msg = f"deployment strategy '{owner.status.strategy}' is not supported"
            logger.error(f"{record.kind.value} {record.name}: {msg}")
            self._set_status(record, Phase.FAILED, msg)
            return None

        strategy_config = self._owner_strategy(record, owner)
        record.status.strategy = owner.status.strategy
        record.status.provider = provisioner.provider_name

        try:
            snapshot_id, msg = provisioner.create(record, owner, strategy_config)
        except Exception as e:
            logger.error(f"Failed to create snapshot {record.name}: {e}")
            self._set_status(record, Phase.FAILED, status_message(e))
            raise

        if snapshot_id is None:
            self._set_status(record, Phase.IN_PROGRESS, msg)
            return self.short_requeue

        self._set_status(record, Phase.COMPLETE, msg)
        return None

    def _owner_strategy(self, record: IntentRecord, owner: IntentRecord) -> StrategyConfig:
        try:
            resolved = self.resolver.resolve(
                owner.kind, owner.tier, owner.deployment_type, strategy=owner.status.strategy or None
            )
        except ConfigNotFound as e:
            self._set_status(record, Phase.FAILED, e.message)
            raise
        return resolved.config
