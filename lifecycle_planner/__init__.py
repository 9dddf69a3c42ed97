"""
Identity Lifecycle Planner

Classifies identity transitions (joiner, rehire, mover, leaver, leave of
absence, return to work, reverse leaver) from before/after snapshots and
synthesizes the provisioning plans that carry them out, including the
reversible plans that restore access after a reversed leaver and revert
native account changes.
"""

__version__ = "1.0.0"
__author__ = "Lifecycle Planner Team"
__email__ = "team@example.com"

from .engine.classifier import LifecycleClassifier
from .engine.config_store import LifecycleConfigStore
from .models import IdentitySnapshot, LifecycleCategory, ProvisioningPlan
from .planning.birthright import ProvisioningPlanBuilder
from .planning.reversal import DiffReversalEngine
from .planning.reverse_leaver import ReverseLeaverSynthesizer
from .service import LifecycleService

__all__ = [
    "LifecycleService",
    "LifecycleClassifier",
    "LifecycleConfigStore",
    "ProvisioningPlanBuilder",
    "DiffReversalEngine",
    "ReverseLeaverSynthesizer",
    "IdentitySnapshot",
    "LifecycleCategory",
    "ProvisioningPlan",
]
