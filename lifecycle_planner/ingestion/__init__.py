"""
Input Ingestion Package.

This package loads identity snapshots, transitions and historical plans
from JSON and YAML documents.
"""

from .snapshot_loader import SnapshotLoader

__all__ = ["SnapshotLoader"]
