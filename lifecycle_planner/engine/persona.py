"""
Persona Relationship Engine for the Lifecycle Planner.

Works out which persona relationships (Employee, Contractor, ...) were added
or dropped between two snapshots and answers the joiner, leaver, reverse
leaver and mover questions asked when a deployment runs in persona mode.

Rules for one relationship type:

    previous        current         change
    --------        -------         ------
    (absent)        ACTIVE          ADD
    INACTIVE        ACTIVE          ADD   (reactivated)
    SUSPENDED       ACTIVE          none  (return to work handles it)
    ACTIVE          INACTIVE        DROP
    ACTIVE/SUSP.    (absent)        DROP
"""

import logging
from typing import Callable, List, Optional, Union

from ..models import (
    IdentitySnapshot,
    PersonaRelationship,
    RelationshipChange,
    RelationshipChangeType,
    RelationshipStatus,
)

logger = logging.getLogger(__name__)


def _relationships(snapshot: Optional[IdentitySnapshot]) -> List[PersonaRelationship]:
    if snapshot is None or snapshot.relationships is None:
        return []
    return list(snapshot.relationships)


def _find(relationships: List[PersonaRelationship], relationship_type: str) -> Optional[PersonaRelationship]:
    for relationship in relationships:
        if relationship.type.lower() == relationship_type.lower():
            return relationship
    return None


class PersonaRelationshipEngine:
    """Computes relationship adds and drops between snapshots."""

    def __init__(self, drops_to_ignore: Union[List[str], Callable[[], List[str]], None] = None):
        """
        Initialize the engine.

        Args:
            drops_to_ignore: Relationship types whose drops are ignored when
                             looking for mover changes, or a callable returning
                             them so reloaded configuration is picked up
        """
        self._drops_to_ignore = drops_to_ignore

    @property
    def drops_to_ignore(self) -> List[str]:
        drops = self._drops_to_ignore() if callable(self._drops_to_ignore) else self._drops_to_ignore
        return [name.lower() for name in (drops or [])]

    def changes(
        self,
        current: IdentitySnapshot,
        previous: Optional[IdentitySnapshot],
        apply_ignore: bool = False,
    ) -> List[RelationshipChange]:
        """
        List relationship changes from previous to current.

        Args:
            current: Snapshot after the event
            previous: Snapshot before the event, None for a new identity
            apply_ignore: Skip drops of ignored relationship types

        Returns:
            ADD and DROP changes in current-then-previous order
        """
        new_relationships = _relationships(current)
        old_relationships = _relationships(previous)
        changes: List[RelationshipChange] = []

        for relationship in new_relationships:
            before = _find(old_relationships, relationship.type)
            if relationship.status == RelationshipStatus.ACTIVE:
                if before is None:
                    changes.append(RelationshipChange(
                        change=RelationshipChangeType.ADD, relationship=relationship, reason="new relationship"
                    ))
                elif before.status == RelationshipStatus.INACTIVE:
                    changes.append(RelationshipChange(
                        change=RelationshipChangeType.ADD, relationship=relationship, reason="reactivated"
                    ))
            elif relationship.status == RelationshipStatus.INACTIVE:
                if before is not None and before.status == RelationshipStatus.ACTIVE:
                    changes.append(RelationshipChange(
                        change=RelationshipChangeType.DROP, relationship=before, reason="deactivated"
                    ))

        for relationship in old_relationships:
            if relationship.live and _find(new_relationships, relationship.type) is None:
                changes.append(RelationshipChange(
                    change=RelationshipChangeType.DROP, relationship=relationship, reason="removed"
                ))

        ignored = self.drops_to_ignore if apply_ignore else []
        if ignored:
            changes = [
                change for change in changes
                if not (change.change == RelationshipChangeType.DROP
                        and change.relationship.type.lower() in ignored)
            ]

        if changes:
            logger.debug(f"Relationship changes for {current.name}: {[str(c) for c in changes]}")
        return changes

    def all_new(self, current: IdentitySnapshot, previous: Optional[IdentitySnapshot]) -> bool:
        """Every active relationship is new and the identity never had any before."""
        if previous is not None and previous.relationships is not None:
            return False
        active = [r for r in _relationships(current) if r.active]
        if not active:
            return False
        adds = [c for c in self.changes(current, previous) if c.change == RelationshipChangeType.ADD]
        return len(adds) == len(active)

    def has_new_relationship(self, current: IdentitySnapshot, previous: Optional[IdentitySnapshot]) -> bool:
        return any(c.change == RelationshipChangeType.ADD for c in self.changes(current, previous))

    def is_termination(self, current: IdentitySnapshot, previous: Optional[IdentitySnapshot]) -> bool:
        """Something was dropped and nothing active or suspended remains."""
        if previous is None:
            return False
        drops = [c for c in self.changes(current, previous) if c.change == RelationshipChangeType.DROP]
        if not drops:
            return False
        return not any(r.live for r in _relationships(current))

    def is_reverse_termination(self, current: IdentitySnapshot, previous: Optional[IdentitySnapshot]) -> bool:
        """Relationships came back after every previous one had ended."""
        if previous is None or previous.relationships is None:
            return False
        if any(r.live for r in previous.relationships):
            return False
        return self.has_new_relationship(current, previous)

    def is_composition_change(self, current: IdentitySnapshot, previous: Optional[IdentitySnapshot]) -> bool:
        """Relationships changed without being a full add, full drop or reinstatement."""
        if previous is None:
            return False
        if not self.changes(current, previous, apply_ignore=True):
            return False
        if self.all_new(current, previous) or self.is_termination(current, previous):
            return False
        return not self.is_reverse_termination(current, previous)
