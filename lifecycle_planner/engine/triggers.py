"""
Trigger Match Engine for the Lifecycle Planner.

Evaluates the trigger definitions configured for one lifecycle process
against a previous/current identity pair and returns whether the process
is allowed to run.

HR-event predicates only fire on a change: a value that is merely present
on the current snapshot does not satisfy a trigger, it has to have become
that value on this transition. Value tokens understood in old_values and
new_values:

    *             any non-empty value
    EMPTY         no value
    IGNORE, SAME  no constraint on this side
    DATE          (new side) a date assigned or changed, compared to today
    DATE CLEARED  (new side) a date removed, previous date compared to today
    a,b,c         one of the listed values (case-insensitive)

The POPULATION attribute compares population membership instead of an
attribute value.
"""

import logging
import re
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from ..models import (
    CombinationMode,
    DateOperation,
    Difference,
    IdentitySnapshot,
    RelationshipChangeType,
    TriggerDefinition,
    TriggerKind,
    TriggerPredicate,
)
from .differences import DifferenceExtractor
from .interfaces import TriggerSource
from .persona import PersonaRelationshipEngine
from .population import PopulationMatcher

logger = logging.getLogger(__name__)

JOINER_PROCESS = "joinerProcess"
TERMINATION_PROCESS = "terminationProcess"

ANY = "*"
EMPTY = "EMPTY"
IGNORE = "IGNORE"
SAME = "SAME"
DATE = "DATE"
DATE_CLEARED = "DATE CLEARED"
POPULATION_ATTRIBUTES = ("POPULATION", "GROUPDEFINITION")
DEFAULT_DATE_FORMATS = ["%Y-%m-%d", "%m/%d/%Y", "%Y%m%d"]


def _values(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [v for v in value if v is not None]
    return [value]


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set)):
        return len(value) == 0
    return False


def _token(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip().lower()


class TriggerMatchEngine:
    """
    Decides whether a lifecycle process is eligible for a transition.

    Trigger definitions come from a TriggerSource; a process is allowed when
    any enabled definition matches.
    """

    def __init__(
        self,
        triggers: TriggerSource,
        population_matcher: PopulationMatcher,
        persona_engine: Optional[PersonaRelationshipEngine] = None,
        difference_extractor: Optional[DifferenceExtractor] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        """
        Initialize the trigger engine.

        Args:
            triggers: Source of trigger definitions and feature switches
            population_matcher: Evaluates POPULATION predicates
            persona_engine: Evaluates persona relationship definitions
            difference_extractor: Computes attribute changes
            today: Clock used by DATE predicates, defaults to date.today
        """
        self.triggers = triggers
        self.population_matcher = population_matcher
        self.persona_engine = persona_engine or PersonaRelationshipEngine(
            triggers.relationship_drops_to_ignore
        )
        self.difference_extractor = difference_extractor or DifferenceExtractor()
        self.today = today or date.today

    def allowed(
        self,
        current: IdentitySnapshot,
        previous: Optional[IdentitySnapshot],
        process_key: str,
        feature_name: str,
        ignore_trigger_check: bool = False,
    ) -> bool:
        """
        Check whether a lifecycle process should run for a transition.

        Args:
            current: Snapshot after the event
            previous: Snapshot before the event, None for a new identity
            process_key: Trigger process key, e.g. 'joinerProcess'
            feature_name: Feature switch guarding the process
            ignore_trigger_check: Skip predicate evaluation once the
                                  preconditions hold

        Returns:
            True if the process is allowed

        Raises:
            ValueError: If current is None
        """
        if current is None:
            raise ValueError("Current identity snapshot is required")

        if self.triggers.is_feature_disabled(feature_name):
            logger.debug(f"{feature_name} is disabled, skipping {process_key}")
            return False

        if previous is None and process_key != JOINER_PROCESS:
            return False

        if not current.correlated and process_key != TERMINATION_PROCESS:
            logger.debug(f"{current.name} is not correlated, skipping {process_key}")
            return False

        if current.is_service:
            logger.debug(f"{current.name} is a service identity, skipping {process_key}")
            return False

        if ignore_trigger_check:
            return True

        definitions = self.triggers.load_trigger_definitions(process_key)
        if not definitions:
            logger.debug(f"No trigger definitions configured for {process_key}")
            return False

        differences = self.difference_extractor.as_map(previous, current)
        for definition in definitions:
            if definition.disabled:
                continue
            if self.evaluate_definition(definition, current, previous, differences):
                logger.info(
                    f"Trigger '{definition.name or process_key}' fired for {current.name} ({process_key})"
                )
                return True

        return False

    def evaluate_definition(
        self,
        definition: TriggerDefinition,
        current: IdentitySnapshot,
        previous: Optional[IdentitySnapshot],
        differences: Optional[Dict[str, Difference]] = None,
    ) -> bool:
        """
        Evaluate every predicate of one definition and combine the results.

        Returns:
            AND: all predicates matched; OR: at least one matched.
            A definition without predicates never matches.
        """
        if not definition.predicates:
            return False

        if differences is None:
            differences = self.difference_extractor.as_map(previous, current)

        results = []
        for predicate in definition.predicates:
            if definition.kind == TriggerKind.PERSONA_RELATIONSHIP:
                result = self._persona_predicate(predicate, current, previous)
            else:
                result = self._hr_predicate(predicate, current, previous, differences, definition.operation)
            logger.debug(
                f"{definition.process_key}: {predicate.attribute} "
                f"[{predicate.old_values} -> {predicate.new_values}] = {result}"
            )
            results.append(result)

        if definition.operation == CombinationMode.OR:
            return any(results)
        return all(results)

    def _hr_predicate(
        self,
        predicate: TriggerPredicate,
        current: IdentitySnapshot,
        previous: Optional[IdentitySnapshot],
        differences: Dict[str, Difference],
        mode: CombinationMode,
    ) -> bool:
        if predicate.regex_malformed:
            logger.warning(f"Predicate on {predicate.attribute} has an unusable regex, treating it as a non-match")
            return False

        old_spec = predicate.old_values.strip()
        new_spec = predicate.new_values.strip()

        if predicate.attribute.upper() in POPULATION_ATTRIBUTES:
            return self._population_predicate(old_spec, new_spec, current, previous)

        difference = differences.get(predicate.attribute)
        if new_spec.upper() == DATE:
            return self._date_assigned(predicate, difference)
        if new_spec.upper() == DATE_CLEARED:
            return self._date_cleared(predicate, difference)

        if difference is not None and not difference.multi:
            old, new = difference.old_value, difference.new_value
            if isinstance(old, str) and isinstance(new, str) and old.lower() == new.lower():
                difference = None

        if difference is None:
            # Unchanged values only count when the AND definition opts in
            if predicate.override_on_no_change and mode == CombinationMode.AND:
                return self._accepts(new_spec, predicate.pattern, current.get(predicate.attribute))
            return False

        old_value = previous.get(predicate.attribute) if previous is not None else None
        new_value = current.get(predicate.attribute)

        if difference.multi:
            if old_spec == ANY and new_spec == ANY and predicate.pattern is None:
                return True
            return (
                self._accepts(new_spec, predicate.pattern, new_value, difference.added_values)
                and self._accepts(old_spec, None, old_value, difference.removed_values)
            )

        return (
            self._accepts(new_spec, predicate.pattern, new_value)
            and self._accepts(old_spec, None, old_value)
        )

    def _accepts(
        self,
        spec: str,
        pattern: Optional[re.Pattern],
        value: Any,
        changed_values: Optional[List[Any]] = None,
    ) -> bool:
        """Check one side of a predicate; lists and regexes look at changed values when given."""
        if pattern is not None:
            candidates = _values(changed_values if changed_values is not None else value)
            return any(pattern.search(str(v)) for v in candidates)

        upper = spec.upper()
        if upper in (IGNORE, SAME) or not spec:
            return True
        if upper == EMPTY:
            return _is_empty(value)
        if spec == ANY:
            return not _is_empty(value)

        accepted = {_token(v) for v in spec.split(",") if v.strip()}
        if EMPTY.lower() in accepted and _is_empty(value):
            return True
        candidates = _values(changed_values if changed_values is not None else value)
        return any(_token(v) in accepted for v in candidates)

    def _population_predicate(
        self,
        old_spec: str,
        new_spec: str,
        current: IdentitySnapshot,
        previous: Optional[IdentitySnapshot],
    ) -> bool:
        """Joined the new_values populations and/or left the old_values populations."""
        unconstrained = (IGNORE, SAME, ANY, "")
        checked = False

        if new_spec.upper() not in unconstrained:
            was_member = previous is not None and self.population_matcher.matches(previous, new_spec)
            if was_member or not self.population_matcher.matches(current, new_spec):
                return False
            checked = True

        if old_spec.upper() not in unconstrained:
            was_member = previous is not None and self.population_matcher.matches(previous, old_spec)
            if not was_member or self.population_matcher.matches(current, old_spec):
                return False
            checked = True

        return checked

    def _date_assigned(self, predicate: TriggerPredicate, difference: Optional[Difference]) -> bool:
        if difference is None or difference.multi or _is_empty(difference.new_value):
            return False
        return self._compare_to_today(difference.new_value, predicate)

    def _date_cleared(self, predicate: TriggerPredicate, difference: Optional[Difference]) -> bool:
        if difference is None or difference.multi:
            return False
        if not _is_empty(difference.new_value) or _is_empty(difference.old_value):
            return False
        return self._compare_to_today(difference.old_value, predicate)

    def _compare_to_today(self, value: Any, predicate: TriggerPredicate) -> bool:
        parsed = self._parse_date(value, predicate.date_format)
        if parsed is None:
            return False

        days = (parsed - self.today()).days
        if days == 0:
            return True
        if predicate.date_operation == DateOperation.GREATEREQUAL:
            return days > 0
        if predicate.date_operation == DateOperation.LESSEQUAL:
            return days < 0
        return False

    def _parse_date(self, value: Any, date_format: Optional[str]) -> Optional[date]:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value

        formats = [f.strip() for f in (date_format or "").split(",") if f.strip()] or DEFAULT_DATE_FORMATS
        for fmt in formats:
            try:
                return datetime.strptime(str(value).strip(), fmt).date()
            except ValueError:
                continue

        logger.debug(f"Could not parse '{value}' with formats {formats}")
        return None

    def _persona_predicate(
        self,
        predicate: TriggerPredicate,
        current: IdentitySnapshot,
        previous: Optional[IdentitySnapshot],
    ) -> bool:
        direction = predicate.new_values.strip().upper()
        if direction not in (RelationshipChangeType.ADD.value, RelationshipChangeType.DROP.value):
            logger.warning(f"Persona trigger on '{predicate.attribute}' expects ADD or DROP, got '{direction}'")
            return False

        for change in self.persona_engine.changes(current, previous):
            if change.change.value != direction:
                continue
            if predicate.attribute == ANY or change.relationship.type.lower() == predicate.attribute.lower():
                return True
        return False
