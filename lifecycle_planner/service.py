"""
Lifecycle Service for the Lifecycle Planner.

Wires the configuration store, matchers, classifier and plan builders
together and exposes the three core operations (classify, forward plan,
restoration plan) plus native change detection and recovery.
"""

import logging
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from .engine.classifier import LifecycleClassifier
from .engine.config_store import LifecycleConfigStore
from .engine.differences import DifferenceExtractor
from .engine.interfaces import AccountSnapshotSource
from .engine.persona import PersonaRelationshipEngine
from .engine.population import PopulationMatcher
from .engine.triggers import TriggerMatchEngine
from .models import (
    AccountOperation,
    IdentitySnapshot,
    LifecycleCategory,
    NativeChangeDetection,
    ProvisioningPlan,
)
from .planning.birthright import ProvisioningPlanBuilder
from .planning.leaver import LeaverPlanBuilder
from .planning.native_change import NativeChangeDetector, NativeChangeRecoveryBuilder
from .planning.reversal import DiffReversalEngine
from .planning.reverse_leaver import ReverseLeaverSynthesizer

logger = logging.getLogger(__name__)


class LifecycleService:
    """
    Entry point for classifying identity transitions and planning provisioning.

    All collaborators are built from one LifecycleConfigStore unless a
    deployment passes its own.
    """

    def __init__(
        self,
        config_store: Optional[LifecycleConfigStore] = None,
        snapshots: Optional[AccountSnapshotSource] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        """
        Initialize the service.

        Args:
            config_store: Lifecycle configuration, the packaged sample if omitted
            snapshots: Account history used by the reversal fallback
            today: Clock used by date triggers
        """
        self.config_store = config_store or LifecycleConfigStore()
        self.snapshots = snapshots

        self.population_matcher = PopulationMatcher(self.config_store)
        self.persona_engine = PersonaRelationshipEngine(self.config_store.relationship_drops_to_ignore)
        self.difference_extractor = DifferenceExtractor()
        self.trigger_engine = TriggerMatchEngine(
            self.config_store,
            self.population_matcher,
            persona_engine=self.persona_engine,
            difference_extractor=self.difference_extractor,
            today=today,
        )
        self.classifier = LifecycleClassifier(self.trigger_engine, self.persona_engine)

        self.reversal_engine = DiffReversalEngine(snapshots)
        self.leaver_builder = LeaverPlanBuilder(self.config_store)
        self.plan_builder = ProvisioningPlanBuilder(
            self.config_store,
            self.population_matcher,
            naming_policy=self.config_store,
            leaver_builder=self.leaver_builder,
        )
        self.reverse_leaver = ReverseLeaverSynthesizer(
            self.config_store,
            reversal_engine=self.reversal_engine,
            plan_builder=self.plan_builder,
        )
        self.native_change_detector = NativeChangeDetector(self.config_store, self.config_store)
        self.native_change_recovery = NativeChangeRecoveryBuilder(self.config_store, self.reversal_engine)

        logger.info(f"Lifecycle service ready with configuration {self.config_store.config_path}")

    @classmethod
    def from_config_file(cls, config_path: Union[str, Path], **kwargs: Any) -> "LifecycleService":
        return cls(LifecycleConfigStore(config_path), **kwargs)

    def classify(
        self,
        previous: Optional[IdentitySnapshot],
        current: IdentitySnapshot,
    ) -> Optional[LifecycleCategory]:
        """Classify a transition, None when no lifecycle event applies."""
        return self.classifier.classify(previous, current)

    def build_forward_plan(
        self,
        category: LifecycleCategory,
        identity: IdentitySnapshot,
        application_name: Optional[str] = None,
    ) -> Optional[ProvisioningPlan]:
        """Build the provisioning plan for a classified transition."""
        return self.plan_builder.build(category, identity, application_name)

    def build_restoration_plan(
        self,
        historical_plan: ProvisioningPlan,
        application_name: str,
        identity: Optional[Union[str, IdentitySnapshot]] = None,
    ) -> Optional[ProvisioningPlan]:
        """Build the plan that restores one application after a reversed leaver."""
        return self.reverse_leaver.build_restoration_plan(historical_plan, application_name, identity)

    def process_transition(
        self,
        previous: Optional[IdentitySnapshot],
        current: IdentitySnapshot,
        application_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Classify a transition and build its forward plan.

        Returns:
            Dictionary with the category and the plan (either may be None)
        """
        category = self.classify(previous, current)
        plan = None
        if category is not None:
            plan = self.build_forward_plan(category, current, application_name)
        return {"category": category, "plan": plan}

    def detect_native_change(
        self,
        identity: str,
        application: str,
        native_identity: str,
        old_attributes: Optional[Dict[str, Any]],
        new_attributes: Optional[Dict[str, Any]],
        operation: AccountOperation = AccountOperation.MODIFY,
        pending_plans: Optional[List[ProvisioningPlan]] = None,
    ) -> Optional[NativeChangeDetection]:
        return self.native_change_detector.detect(
            identity, application, native_identity, old_attributes, new_attributes, operation, pending_plans
        )

    def build_native_change_plan(
        self,
        identity_name: str,
        detections: List[NativeChangeDetection],
        privileged_only: bool = False,
    ) -> Optional[ProvisioningPlan]:
        return self.native_change_recovery.build_recovery_plan(identity_name, detections, privileged_only)
