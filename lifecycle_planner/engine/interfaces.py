"""
Collaborator interfaces for the Lifecycle Planner.

The engine never reads configuration files, naming policies or account
history itself. It asks for them through these narrow abstract classes so a
deployment (or a test) can supply its own implementation.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union

from ..models import (
    BirthrightRule,
    IdentitySnapshot,
    PopulationDefinition,
    RoleDefinition,
    TriggerDefinition,
)


class TriggerSource(ABC):
    """Supplies trigger definitions and feature switches."""

    @abstractmethod
    def load_trigger_definitions(self, process_key: str) -> List[TriggerDefinition]:
        """
        Load the trigger definitions for a lifecycle process.

        Args:
            process_key: Process key such as 'joinerProcess'

        Returns:
            Definitions for the process, empty if none are configured
        """
        pass

    @abstractmethod
    def is_feature_disabled(self, feature_name: str) -> bool:
        """Check whether a lifecycle feature is switched off."""
        pass

    def persona_enabled(self) -> bool:
        """Whether relationships, not HR triggers, drive joiner/leaver/mover."""
        return False

    def relationship_drops_to_ignore(self) -> List[str]:
        """Relationship types whose drops are not mover events."""
        return []


class PopulationSource(ABC):
    """Resolves population names to their filters."""

    @abstractmethod
    def get_population(self, name: str) -> Optional[PopulationDefinition]:
        pass


class BirthrightSource(ABC):
    """Supplies per-application birthright rules and the role catalog."""

    @abstractmethod
    def load_birthright_rule(self, application: str) -> Optional[BirthrightRule]:
        pass

    @abstractmethod
    def birthright_applications(self) -> List[str]:
        """Names of applications that carry a birthright rule."""
        pass

    @abstractmethod
    def get_role(self, role_name: str) -> Optional[RoleDefinition]:
        pass

    def role_belongs_to_application(self, role_name: str, application: str) -> bool:
        """
        Check whether a role provisions access on an application.

        Args:
            role_name: Role to check
            application: Application being restored or provisioned

        Returns:
            True if the role lists the application
        """
        role = self.get_role(role_name)
        if role is None:
            return False
        return any(app.lower() == application.lower() for app in role.applications)

    def filter_detected_roles_default(self) -> bool:
        return True


class NamingPolicy(ABC):
    """Computes native identifiers for accounts that do not exist yet."""

    @abstractmethod
    def resolve_native_identity(self, application: str, identity: IdentitySnapshot) -> Optional[str]:
        pass


class AccountSnapshotSource(ABC):
    """Point-in-time account history used when reversing scalar changes."""

    @abstractmethod
    def most_recent_account_snapshot(
        self,
        identity: Union[str, IdentitySnapshot],
        application: str,
        native_identity: str,
    ) -> Optional[Dict[str, Any]]:
        """
        Get the latest captured attributes of an account.

        Returns:
            Attribute mapping, or None if the account was never captured
        """
        pass
