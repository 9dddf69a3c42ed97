"""
Engine Package for the Lifecycle Planner.

This package provides population matching, difference extraction, trigger
evaluation, lifecycle classification and the configuration/snapshot
collaborators the engine reads from.
"""

from .classifier import LIFECYCLE_PROCESSES, PRECEDENCE, LifecycleClassifier
from .config_cache import ConfigCache
from .config_store import LifecycleConfigStore
from .differences import DifferenceExtractor, diff_attribute, diff_attributes
from .interfaces import (
    AccountSnapshotSource,
    BirthrightSource,
    NamingPolicy,
    PopulationSource,
    TriggerSource,
)
from .persona import PersonaRelationshipEngine
from .population import PopulationMatcher
from .snapshot_store import AccountSnapshotStore
from .triggers import TriggerMatchEngine

__all__ = [
    "LifecycleClassifier",
    "LIFECYCLE_PROCESSES",
    "PRECEDENCE",
    "ConfigCache",
    "LifecycleConfigStore",
    "AccountSnapshotStore",
    "DifferenceExtractor",
    "diff_attribute",
    "diff_attributes",
    "PersonaRelationshipEngine",
    "PopulationMatcher",
    "TriggerMatchEngine",
    "TriggerSource",
    "PopulationSource",
    "BirthrightSource",
    "NamingPolicy",
    "AccountSnapshotSource",
]
