"""
Cloud Resource Operator reconciliation engine.

Converges intent records (postgres, redis, blobstorage and snapshots of the
first two) toward real AWS or in-cluster resources and publishes their
connection details to secrets.
"""

__version__ = "0.1.0"
