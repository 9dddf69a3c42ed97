"""
Planning Package for the Lifecycle Planner.

This package provides the forward (joiner, mover, leaver) plan builders and
the reversible paths: reverse leaver restoration and native change recovery.
"""

from .base_builder import BasePlanBuilder
from .birthright import FORWARD_REQUEST_TYPES, ProvisioningPlanBuilder
from .helpers import get_leaf_from_native_id, get_parent_from_native_id, plan_summary, role_request, split_dn
from .leaver import LEAVER_REQUEST_TYPES, LeaverPlanBuilder
from .native_change import NATIVE_CHANGE_FEATURE, NativeChangeDetector, NativeChangeRecoveryBuilder
from .reversal import OPERATION_INVERSES, DiffReversalEngine, RenameTrace
from .reverse_leaver import LEAVER_PLAN_TYPES, ReverseLeaverSynthesizer

__all__ = [
    "BasePlanBuilder",
    "ProvisioningPlanBuilder",
    "FORWARD_REQUEST_TYPES",
    "LeaverPlanBuilder",
    "LEAVER_REQUEST_TYPES",
    "DiffReversalEngine",
    "RenameTrace",
    "OPERATION_INVERSES",
    "ReverseLeaverSynthesizer",
    "LEAVER_PLAN_TYPES",
    "NativeChangeDetector",
    "NativeChangeRecoveryBuilder",
    "NATIVE_CHANGE_FEATURE",
    "split_dn",
    "get_parent_from_native_id",
    "get_leaf_from_native_id",
    "role_request",
    "plan_summary",
]
