#!/usr/bin/env python3
"""
Controller Launcher for the Cloud Resource Operator

Lists intent records of every kind on a short loop and reconciles each one
whose requeue time has elapsed or whose spec or deletion state changed.
"""

import logging
import sys
import time
from typing import Dict, Optional, Tuple

from cloudresources.config import get_config
from cloudresources.models.enums import ResourceType
from cloudresources.services.credentials import get_credential_manager
from cloudresources.services.provisioning import AwsProvider, FallbackProvider
from cloudresources.services.provisioning.base import is_retryable_aws_error
from cloudresources.services.reconciler import Reconciler
from cloudresources.services.store import KubernetesStore
from cloudresources.services.strategy import StrategyResolver
from cloudresources.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

# (generation, deletion requested, due time or None for no requeue)
ScheduleEntry = Tuple[int, bool, Optional[float]]


def build_reconciler(cfg) -> Tuple[KubernetesStore, Reconciler]:
    """Wire the store, credentials, providers and reconciler from configuration."""
    store = KubernetesStore(in_cluster=cfg.KUBE_IN_CLUSTER, kubeconfig_path=cfg.KUBECONFIG or None)
    retry_policy = RetryPolicy(
        interval=cfg.POLL_INTERVAL,
        timeout=cfg.POLL_TIMEOUT,
        retryable=is_retryable_aws_error,
    )
    credential_manager = get_credential_manager(
        cfg.CREDENTIAL_MODE,
        store,
        retry_policy=RetryPolicy(interval=cfg.POLL_INTERVAL, timeout=cfg.POLL_TIMEOUT),
    )
    resolver = StrategyResolver(
        store,
        provider_config_map=cfg.PROVIDER_CONFIG_MAP,
        config_namespace=cfg.CONFIG_NAMESPACE,
        strategy_config_maps={
            "aws": cfg.AWS_STRATEGY_CONFIG_MAP,
            "openshift": cfg.OPENSHIFT_STRATEGY_CONFIG_MAP,
        },
        default_region=cfg.DEFAULT_REGION,
    )
    reconciler = Reconciler(
        store,
        resolver,
        AwsProvider(store, credential_manager, cfg.TAG_KEY_PREFIX, retry_policy),
        FallbackProvider(store),
        reconcile_period=cfg.RECONCILE_PERIOD,
        short_requeue=cfg.SHORT_REQUEUE,
    )
    return store, reconciler


def is_due(entry: Optional[ScheduleEntry], generation: int, deleting: bool, now: float) -> bool:
    if entry is None:
        return True
    last_generation, last_deleting, due_at = entry
    if last_generation != generation or last_deleting != deleting:
        return True
    return due_at is not None and now >= due_at


def run_pass(store, reconciler: Reconciler, schedule: Dict[Tuple[str, str, str], ScheduleEntry],
             short_requeue: int, namespace: Optional[str] = None, clock=time.monotonic) -> None:
    """
    Reconcile every due record once.

    Errors for one record are logged and the record is retried after the
    short requeue interval; they never stop the pass. A kind that cannot be
    listed is skipped and its schedule entries are kept.
    """
    seen = set()
    for kind in ResourceType:
        try:
            records = store.list_records(kind, namespace)
        except Exception as e:
            logger.error(f"Failed to list {kind.value} records: {e}")
            seen.update(key for key in schedule if key[0] == kind.value)
            continue
        for record in records:
            key = (kind.value, record.namespace, record.name)
            seen.add(key)
            now = clock()
            if not is_due(schedule.get(key), record.generation, record.deletion_requested, now):
                continue
            try:
                delay = reconciler.reconcile(record)
            except Exception as e:
                logger.error(f"Failed to reconcile {kind.value} {record.namespace}/{record.name}: {e}", exc_info=True)
                delay = short_requeue
            due_at = now + delay if delay is not None else None
            schedule[key] = (record.generation, record.deletion_requested, due_at)

    for key in set(schedule) - seen:
        del schedule[key]


def main():
    """Start the controller loop"""
    cfg = get_config()
    logging.basicConfig(level=cfg.LOG_LEVEL, format=cfg.LOG_FORMAT)

    try:
        logger.info("Starting Cloud Resource Operator controller...")
        store, reconciler = build_reconciler(cfg)
        schedule = {}
        # an empty watch namespace means every namespace
        namespace = cfg.WATCH_NAMESPACE or None

        while True:
            try:
                run_pass(store, reconciler, schedule, cfg.SHORT_REQUEUE, namespace)
            except Exception as e:
                logger.error(f"Controller pass failed: {e}", exc_info=True)
            time.sleep(cfg.LOOP_INTERVAL)

    except Exception as e:
        logger.error(f"Failed to start controller: {e}", exc_info=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
