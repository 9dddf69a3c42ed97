"""
Difference Extractor for the Lifecycle Planner.

Compares two snapshots attribute by attribute. Multi-valued attributes
produce added/removed value lists; scalars produce an old/new pair.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from ..models import Difference, IdentitySnapshot

logger = logging.getLogger(__name__)


def _is_multi(value: Any) -> bool:
    return isinstance(value, (list, tuple, set))


def _ordered_minus(left: Iterable[Any], right: Iterable[Any]) -> List[Any]:
    right = list(right)
    result = []
    for value in left:
        if value not in right and value not in result:
            result.append(value)
    return result


def diff_attribute(attribute: str, old: Any, new: Any) -> Optional[Difference]:
    """
    Compare one attribute's old and new values.

    Args:
        attribute: Attribute name
        old: Previous value, None if absent
        new: Current value, None if absent

    Returns:
        Difference, or None if nothing changed
    """
    if _is_multi(old) or _is_multi(new):
        old_values = list(old) if _is_multi(old) else ([] if old is None else [old])
        new_values = list(new) if _is_multi(new) else ([] if new is None else [new])
        added = _ordered_minus(new_values, old_values)
        removed = _ordered_minus(old_values, new_values)
        if not added and not removed:
            return None
        return Difference(attribute=attribute, added_values=added, removed_values=removed)

    if old == new:
        return None
    return Difference(attribute=attribute, old_value=old, new_value=new)


def diff_attributes(
    old_attributes: Optional[Dict[str, Any]],
    new_attributes: Optional[Dict[str, Any]],
    attributes: Optional[Iterable[str]] = None,
) -> List[Difference]:
    """
    Compare two attribute maps.

    Args:
        old_attributes: Previous attributes, None if the owner did not exist
        new_attributes: Current attributes
        attributes: Restrict the comparison to these names

    Returns:
        Differences in attribute name order
    """
    old_attributes = old_attributes or {}
    new_attributes = new_attributes or {}
    if attributes is None:
        names = sorted(set(old_attributes) | set(new_attributes))
    else:
        names = list(attributes)

    differences = []
    for name in names:
        difference = diff_attribute(name, old_attributes.get(name), new_attributes.get(name))
        if difference is not None:
            differences.append(difference)
    return differences


def apply_difference(value: Any, difference: Difference) -> Any:
    """
    Apply a difference to an attribute value.

    Args:
        value: Current value of the attribute
        difference: Change to apply

    Returns:
        The new value; multi-valued results keep the original order
    """
    if not difference.multi:
        return difference.new_value

    values = list(value) if _is_multi(value) else ([] if value is None else [value])
    values = [item for item in values if item not in (difference.removed_values or [])]
    for item in difference.added_values or []:
        if item not in values:
            values.append(item)
    return values


class DifferenceExtractor:
    """Produces attribute-level differences between identity snapshots."""

    def diff(self, previous: Optional[IdentitySnapshot], current: IdentitySnapshot) -> List[Difference]:
        """
        Diff two identity snapshots.

        Args:
            previous: Snapshot before the event, None for a new identity
            current: Snapshot after the event

        Returns:
            Attribute differences; every current attribute when previous is None

        Raises:
            ValueError: If current is None
        """
        if current is None:
            raise ValueError("Current identity snapshot is required")

        old_attributes = previous.attributes if previous is not None else None
        differences = diff_attributes(old_attributes, current.attributes)

        logger.debug(f"Found {len(differences)} attribute differences for {current.name}")
        return differences

    def as_map(self, previous: Optional[IdentitySnapshot], current: IdentitySnapshot) -> Dict[str, Difference]:
        """Differences keyed by attribute name."""
        return {difference.attribute: difference for difference in self.diff(previous, current)}
