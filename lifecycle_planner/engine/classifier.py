"""
Lifecycle Classifier for the Lifecycle Planner.

Assigns exactly one lifecycle category to a previous/current snapshot pair.
HR feeds often change several attributes in one sync, so the raw predicates
of two categories can hold at the same time. Categories are therefore tried
in a fixed order and the first one that holds wins:

    1. Rehire
    2. Joiner
    3. Leaver (termination, then leave of absence, then long term disability)
    4. Return to work from LOA / LTD
    5. Reverse leaver
    6. Mover

Persona mode (relationships drive joiner/leaver/reverse leaver/mover) and HR
trigger mode are exclusive per deployment.
"""

import logging
from typing import Dict, List, Optional, Tuple

from ..models import IdentitySnapshot, LifecycleCategory
from .persona import PersonaRelationshipEngine
from .triggers import TriggerMatchEngine

logger = logging.getLogger(__name__)

# category -> (trigger process key, feature switch)
LIFECYCLE_PROCESSES: Dict[LifecycleCategory, Tuple[str, str]] = {
    LifecycleCategory.REHIRE: ("rehireProcess", "JOINER REHIRE FEATURE"),
    LifecycleCategory.JOINER: ("joinerProcess", "JOINER FEATURE"),
    LifecycleCategory.LEAVER: ("terminationProcess", "LEAVER FEATURE"),
    LifecycleCategory.LEAVE_OF_ABSENCE: ("loaProcess", "LEAVER LOA FEATURE"),
    LifecycleCategory.LONG_TERM_DISABILITY: ("ltdProcess", "LEAVER LTD FEATURE"),
    LifecycleCategory.RETURN_FROM_LOA: ("rtwloaProcess", "JOINER LOA FEATURE"),
    LifecycleCategory.RETURN_FROM_LTD: ("rtwltdProcess", "JOINER LTD FEATURE"),
    LifecycleCategory.REVERSE_LEAVER: ("reverseleaverProcess", "REVERSE LEAVER FEATURE"),
    LifecycleCategory.MOVER: ("moverProcess", "MOVER FEATURE"),
    LifecycleCategory.NATIVE_CHANGE: ("nativeChangeProcess", "NATIVE CHANGE DETECTION FEATURE"),
}

PRECEDENCE: List[LifecycleCategory] = [
    LifecycleCategory.REHIRE,
    LifecycleCategory.JOINER,
    LifecycleCategory.LEAVER,
    LifecycleCategory.LEAVE_OF_ABSENCE,
    LifecycleCategory.LONG_TERM_DISABILITY,
    LifecycleCategory.RETURN_FROM_LOA,
    LifecycleCategory.RETURN_FROM_LTD,
    LifecycleCategory.REVERSE_LEAVER,
    LifecycleCategory.MOVER,
]


class LifecycleClassifier:
    """Classifies identity transitions into one lifecycle category."""

    def __init__(
        self,
        trigger_engine: TriggerMatchEngine,
        persona_engine: Optional[PersonaRelationshipEngine] = None,
        persona_enabled: Optional[bool] = None,
    ):
        """
        Initialize the classifier.

        Args:
            trigger_engine: Evaluates trigger definitions per process
            persona_engine: Relationship engine, defaults to the trigger engine's
            persona_enabled: Force persona mode on or off; None asks the
                             trigger source on each classification
        """
        self.trigger_engine = trigger_engine
        self.persona_engine = persona_engine or trigger_engine.persona_engine
        self._persona_enabled = persona_enabled

    @property
    def persona_enabled(self) -> bool:
        if self._persona_enabled is not None:
            return self._persona_enabled
        return self.trigger_engine.triggers.persona_enabled()

    def classify(
        self,
        previous: Optional[IdentitySnapshot],
        current: IdentitySnapshot,
    ) -> Optional[LifecycleCategory]:
        """
        Classify a transition.

        Args:
            previous: Snapshot before the event, None for a new identity
            current: Snapshot after the event

        Returns:
            The winning category, or None if no lifecycle event applies

        Raises:
            ValueError: If current is None
        """
        if current is None:
            raise ValueError("Current identity snapshot is required")

        persona = self.persona_enabled
        for category in PRECEDENCE:
            if self._holds(category, previous, current, persona):
                logger.info(f"Classified {current.name} as {category.value}")
                return category

        logger.debug(f"No lifecycle event for {current.name}")
        return None

    def evaluate_all(
        self,
        previous: Optional[IdentitySnapshot],
        current: IdentitySnapshot,
    ) -> Dict[LifecycleCategory, bool]:
        """
        Evaluate every category independently, ignoring precedence.

        Useful for diagnosing why a transition was classified the way it was.
        """
        if current is None:
            raise ValueError("Current identity snapshot is required")
        persona = self.persona_enabled
        return {category: self._holds(category, previous, current, persona) for category in PRECEDENCE}

    def _holds(
        self,
        category: LifecycleCategory,
        previous: Optional[IdentitySnapshot],
        current: IdentitySnapshot,
        persona: bool,
    ) -> bool:
        if category == LifecycleCategory.REHIRE:
            return previous is not None and self._trigger(category, current, previous)

        if category == LifecycleCategory.JOINER:
            if previous is None:
                return True
            if persona and self._feature_on(category) and self.persona_engine.all_new(current, previous):
                return True
            return self._trigger(category, current, previous)

        if category == LifecycleCategory.LEAVER:
            if persona:
                if not self._feature_on(category) or self.persona_engine.has_new_relationship(current, previous):
                    return False
                return self.persona_engine.is_termination(current, previous)
            return self._trigger(category, current, previous)

        if category in (LifecycleCategory.LEAVE_OF_ABSENCE, LifecycleCategory.LONG_TERM_DISABILITY):
            return not persona and self._trigger(category, current, previous)

        if category in (LifecycleCategory.RETURN_FROM_LOA, LifecycleCategory.RETURN_FROM_LTD):
            return self._trigger(category, current, previous)

        if category == LifecycleCategory.REVERSE_LEAVER:
            if persona:
                if not self._feature_on(category) or self.persona_engine.is_termination(current, previous):
                    return False
                return self.persona_engine.is_reverse_termination(current, previous)
            return self._trigger(category, current, previous)

        if category == LifecycleCategory.MOVER:
            if persona:
                return self._feature_on(category) and self.persona_engine.is_composition_change(current, previous)
            return self._trigger(category, current, previous)

        return False

    def _feature_on(self, category: LifecycleCategory) -> bool:
        _, feature_name = LIFECYCLE_PROCESSES[category]
        return not self.trigger_engine.triggers.is_feature_disabled(feature_name)

    def _trigger(
        self,
        category: LifecycleCategory,
        current: IdentitySnapshot,
        previous: Optional[IdentitySnapshot],
    ) -> bool:
        process_key, feature_name = LIFECYCLE_PROCESSES[category]
        return self.trigger_engine.allowed(current, previous, process_key, feature_name)
