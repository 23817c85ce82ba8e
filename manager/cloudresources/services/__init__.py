"""
Services package for the Cloud Resource Operator.

This package contains the reconciliation logic:
- Strategy: tier to provider and configuration lookup
- Credentials: AWS credential acquisition
- Network: cluster VPC discovery and subnet allocation
- Provisioning: per-kind AWS and in-cluster provisioners
- Reconciler: the per-record convergence state machine
"""

__all__ = []
