"""
Core data models for the Lifecycle Planner.

This module defines the Pydantic models used throughout the system
for identity snapshots, attribute differences, trigger definitions,
birthright configuration and provisioning plans.
"""

import logging
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator, model_validator

from .exceptions import MalformedExpression
from .expressions import PopulationExpression, parse_population_expression

logger = logging.getLogger(__name__)

# Governance platform application that carries role assignments
IIQ_APPLICATION = "IIQ"
ROLE_ATTRIBUTE = "assignedRoles"
NEW_PARENT_ATTRIBUTE = "AC_NewParent"
NEW_NAME_ATTRIBUTE = "AC_NewName"


class LifecycleCategory(str, Enum):
    """Lifecycle transitions an identity change can be classified as."""
    JOINER = "JOINER"
    REHIRE = "REHIRE"
    MOVER = "MOVER"
    LEAVER = "LEAVER"
    LEAVE_OF_ABSENCE = "LEAVE_OF_ABSENCE"
    LONG_TERM_DISABILITY = "LONG_TERM_DISABILITY"
    RETURN_FROM_LOA = "RETURN_FROM_LOA"
    RETURN_FROM_LTD = "RETURN_FROM_LTD"
    REVERSE_LEAVER = "REVERSE_LEAVER"
    NATIVE_CHANGE = "NATIVE_CHANGE"


class RelationshipStatus(str, Enum):
    """Status of a persona relationship."""
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"


class RelationshipChangeType(str, Enum):
    """Direction of a persona relationship change."""
    ADD = "ADD"
    DROP = "DROP"


class AccountOperation(str, Enum):
    """Account level provisioning operations."""
    CREATE = "Create"
    MODIFY = "Modify"
    DELETE = "Delete"
    ENABLE = "Enable"
    DISABLE = "Disable"
    LOCK = "Lock"
    UNLOCK = "Unlock"


class AttributeOperation(str, Enum):
    """Attribute level provisioning operations."""
    ADD = "Add"
    REMOVE = "Remove"
    SET = "Set"


class CombinationMode(str, Enum):
    """How the predicates of a trigger definition are combined."""
    AND = "AND"
    OR = "OR"


class TriggerKind(str, Enum):
    """Whether a trigger watches HR attributes or persona relationships."""
    HR_EVENT = "hr_event"
    PERSONA_RELATIONSHIP = "persona_relationship"


class DateOperation(str, Enum):
    """Comparison of a trigger date against today."""
    GREATEREQUAL = "GREATEREQUAL"
    LESSEQUAL = "LESSEQUAL"
    EQUAL = "EQUAL"


class PersonaRelationship(BaseModel):
    """A sub-identity relationship such as Employee or Contractor."""
    model_config = ConfigDict(frozen=True)

    type: str = Field(..., description="Relationship type, e.g. Employee")
    status: RelationshipStatus = RelationshipStatus.ACTIVE

    @property
    def active(self) -> bool:
        return self.status == RelationshipStatus.ACTIVE

    @property
    def live(self) -> bool:
        """Active or suspended, i.e. not yet terminated."""
        return self.status in (RelationshipStatus.ACTIVE, RelationshipStatus.SUSPENDED)

    @classmethod
    def parse(cls, value: Union[str, Dict[str, Any], "PersonaRelationship"]) -> "PersonaRelationship":
        """Build a relationship from 'Employee', 'Employee INACTIVE' or a mapping."""
        if isinstance(value, PersonaRelationship):
            return value
        if isinstance(value, dict):
            return cls(**value)
        text = str(value).strip()
        for status in RelationshipStatus:
            if text.upper().endswith(f" {status.value}"):
                return cls(type=text[: -len(status.value)].strip(), status=status)
        return cls(type=text)

    def __str__(self) -> str:
        return f"{self.type} {self.status.value}"


class RelationshipChange(BaseModel):
    """One persona relationship added or dropped between two snapshots."""
    model_config = ConfigDict(frozen=True)

    change: RelationshipChangeType
    relationship: PersonaRelationship
    reason: str = ""

    def __str__(self) -> str:
        return f"{self.change.value} {self.relationship}"


class Account(BaseModel):
    """An account linked to an identity on one application."""
    model_config = ConfigDict(frozen=True)

    application: str
    native_identity: str
    attributes: Dict[str, Any] = Field(default_factory=dict)
    disabled: bool = False
    locked: bool = False


class IdentitySnapshot(BaseModel):
    """Point-in-time view of an identity, captured before or after an event."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Unique identity name")
    attributes: Dict[str, Any] = Field(default_factory=dict)
    accounts: List[Account] = Field(default_factory=list)
    roles: List[str] = Field(default_factory=list, description="Assigned and detected roles")
    relationships: Optional[List[PersonaRelationship]] = Field(
        None, description="Persona relationships, None if never recorded"
    )
    correlated: bool = True
    identity_type: Optional[str] = None

    @field_validator('relationships', mode='before')
    @classmethod
    def parse_relationships(cls, v: Any) -> Any:
        """Accept plain strings such as 'Employee INACTIVE'."""
        if v is None:
            return None
        return [PersonaRelationship.parse(item) for item in v]

    def get(self, attribute: str) -> Any:
        """Get an identity attribute; 'name' resolves to the identity name."""
        if attribute == "name" and "name" not in self.attributes:
            return self.name
        return self.attributes.get(attribute)

    def accounts_for(self, application: str) -> List[Account]:
        return [account for account in self.accounts if account.application == application]

    def has_account(self, application: str) -> bool:
        return any(account.application == application for account in self.accounts)

    def find_account(self, application: str, native_identity: Optional[str] = None) -> Optional[Account]:
        for account in self.accounts_for(application):
            if native_identity is None or account.native_identity.lower() == native_identity.lower():
                return account
        return None

    @property
    def is_service(self) -> bool:
        if (self.identity_type or "").lower() == "service":
            return True
        return str(self.attributes.get("serviceCube", "")).lower() == "true"


class Difference(BaseModel):
    """
    One attribute's change between two snapshots.

    Scalar attributes populate old_value/new_value, multi-valued attributes
    populate added_values/removed_values. Never both.
    """
    model_config = ConfigDict(frozen=True)

    attribute: str
    old_value: Optional[Any] = None
    new_value: Optional[Any] = None
    added_values: Optional[List[Any]] = None
    removed_values: Optional[List[Any]] = None

    @model_validator(mode='after')
    def check_shape(self) -> "Difference":
        multi = self.added_values is not None or self.removed_values is not None
        scalar = self.old_value is not None or self.new_value is not None
        if multi and scalar:
            raise ValueError(f"Difference on '{self.attribute}' mixes scalar and multi-valued changes")
        if not multi and not scalar:
            raise ValueError(f"Difference on '{self.attribute}' carries no change")
        return self

    @property
    def multi(self) -> bool:
        return self.added_values is not None or self.removed_values is not None


class TriggerPredicate(BaseModel):
    """
    One attribute test inside a trigger definition.

    old_values/new_values hold either a value token (*, EMPTY, IGNORE, SAME,
    DATE, DATE CLEARED) or a comma-separated list of accepted values. For
    persona relationship triggers, attribute names the relationship type and
    new_values the change direction (ADD or DROP).
    """
    attribute: str
    old_values: str = "IGNORE"
    new_values: str = "*"
    regex: Optional[str] = None
    date_format: Optional[str] = None
    date_operation: DateOperation = DateOperation.GREATEREQUAL
    override_on_no_change: bool = False

    _pattern: Optional[re.Pattern] = PrivateAttr(default=None)
    _malformed: bool = PrivateAttr(default=False)

    @field_validator('old_values', 'new_values', mode='before')
    @classmethod
    def join_values(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple)):
            return ",".join(str(item) for item in v)
        if isinstance(v, bool):
            return "true" if v else "false"
        if v is None:
            return "IGNORE"
        return str(v)

    def model_post_init(self, __context: Any) -> None:
        if not self.regex:
            return
        try:
            self._pattern = re.compile(self.regex)
        except re.error as e:
            logger.warning(f"Trigger predicate on {self.attribute} has an unusable regex '{self.regex}': {e}")
            self._malformed = True

    @property
    def pattern(self) -> Optional[re.Pattern]:
        return self._pattern

    @property
    def regex_malformed(self) -> bool:
        return self._malformed


class TriggerDefinition(BaseModel):
    """Trigger configured for one lifecycle process key."""
    process_key: str
    name: Optional[str] = None
    predicates: List[TriggerPredicate] = Field(default_factory=list)
    operation: CombinationMode = CombinationMode.AND
    disabled: bool = False
    kind: TriggerKind = TriggerKind.HR_EVENT


class PopulationDefinition(BaseModel):
    """A named filter over identity attributes; every criterion must hold."""
    name: str
    criteria: Dict[str, Union[str, List[str]]] = Field(default_factory=dict)
    description: Optional[str] = None

    @field_validator('criteria', mode='before')
    @classmethod
    def stringify_criteria(cls, v: Any) -> Any:
        """YAML reads values such as 1234 or true as numbers and booleans."""
        if not isinstance(v, dict):
            return v or {}

        def text(value: Any) -> str:
            if isinstance(value, bool):
                return "true" if value else "false"
            return "" if value is None else str(value)

        return {
            key: [text(item) for item in value] if isinstance(value, (list, tuple)) else text(value)
            for key, value in v.items()
        }


class RoleDefinition(BaseModel):
    """Role catalog entry."""
    name: str
    birthright: bool = True
    applications: List[str] = Field(default_factory=list)
    population: Optional[str] = None
    description: Optional[str] = None


class LeaverOptions(BaseModel):
    """Per-application account handling when an identity leaves."""
    delete_account: bool = False
    disable_account: bool = True
    remove_entitlements: bool = False
    entitlement_attributes: List[str] = Field(default_factory=list)
    move_ou: Optional[str] = None


class NativeChangeSettings(BaseModel):
    """Per-application native change detection settings."""
    enabled: bool = False
    operations: List[AccountOperation] = Field(
        default_factory=lambda: [AccountOperation.CREATE, AccountOperation.MODIFY, AccountOperation.DELETE]
    )
    attributes: List[str] = Field(default_factory=list)
    privileged_values: List[str] = Field(default_factory=list)


class BirthrightRule(BaseModel):
    """Birthright configuration for one application."""
    application: str
    enabled: bool = True
    roles: List[str] = Field(default_factory=list)
    population: Optional[str] = Field(None, description="Population names or token expression")
    filter_detected_roles: Optional[bool] = None
    native_identity_template: Optional[str] = None
    leaver: Optional[LeaverOptions] = None
    native_change: NativeChangeSettings = Field(default_factory=NativeChangeSettings)

    _expression: Optional[PopulationExpression] = PrivateAttr(default=None)
    _malformed: bool = PrivateAttr(default=False)

    @field_validator('roles', mode='before')
    @classmethod
    def split_roles(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [role.strip() for role in v.split(",") if role.strip()]
        return v or []

    def model_post_init(self, __context: Any) -> None:
        try:
            self._expression = parse_population_expression(self.population)
        except MalformedExpression as e:
            logger.warning(f"Birthright rule for {self.application} has an unusable population: {e}")
            self._malformed = True

    @property
    def expression(self) -> Optional[PopulationExpression]:
        return self._expression

    @property
    def population_malformed(self) -> bool:
        return self._malformed


class AttributeRequest(BaseModel):
    """Attribute level operation inside an account request."""
    name: str
    operation: AttributeOperation
    value: Any = None
    old_value: Any = Field(None, description="Value before a Set, when it was captured")
    arguments: Dict[str, Any] = Field(default_factory=dict)


class AccountRequest(BaseModel):
    """Account level operation on one application and native identity."""
    application: str
    native_identity: Optional[str] = None
    operation: AccountOperation = AccountOperation.MODIFY
    attribute_requests: List[AttributeRequest] = Field(default_factory=list)
    arguments: Dict[str, Any] = Field(default_factory=dict)

    def add(self, attribute_request: AttributeRequest) -> None:
        self.attribute_requests.append(attribute_request)

    def get_attribute_requests(self, name: str) -> List[AttributeRequest]:
        return [req for req in self.attribute_requests if req.name == name]

    def is_empty(self) -> bool:
        """A Modify with nothing to modify does nothing."""
        return self.operation == AccountOperation.MODIFY and not self.attribute_requests

    def matches(self, other: "AccountRequest") -> bool:
        return (
            self.application == other.application
            and (self.native_identity or "").lower() == (other.native_identity or "").lower()
            and self.operation == other.operation
        )


class ProvisioningPlan(BaseModel):
    """Ordered account requests for one identity."""
    identity: Optional[str] = None
    account_requests: List[AccountRequest] = Field(default_factory=list)
    arguments: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def add(self, account_request: AccountRequest) -> None:
        self.account_requests.append(account_request)

    def account_requests_for(self, application: str) -> List[AccountRequest]:
        return [req for req in self.account_requests if req.application == application]

    def is_empty(self) -> bool:
        return all(req.is_empty() for req in self.account_requests)

    @property
    def request_type(self) -> Optional[str]:
        return self.arguments.get("request_type")


class AccountSnapshot(BaseModel):
    """Captured attributes of one account at a point in time."""
    identity: str
    application: str
    native_identity: str
    attributes: Dict[str, Any] = Field(default_factory=dict)
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class NativeChangeDetection(BaseModel):
    """Out-of-band account change reported by an application."""
    identity: str
    application: str
    native_identity: str
    operation: AccountOperation = AccountOperation.MODIFY
    differences: List[Difference] = Field(default_factory=list)
    detected_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def is_empty(self) -> bool:
        return not self.differences


class LifecycleSettings(BaseModel):
    """Deployment wide switches."""
    persona_enabled: bool = False
    filter_detected_roles: bool = True
    disabled_features: List[str] = Field(default_factory=list)
    relationship_drops_to_ignore: List[str] = Field(default_factory=list)


class LifecycleConfig(BaseModel):
    """Everything loaded from the lifecycle configuration file."""
    settings: LifecycleSettings = Field(default_factory=LifecycleSettings)
    triggers: Dict[str, List[TriggerDefinition]] = Field(default_factory=dict)
    populations: Dict[str, PopulationDefinition] = Field(default_factory=dict)
    roles: Dict[str, RoleDefinition] = Field(default_factory=dict)
    applications: Dict[str, BirthrightRule] = Field(default_factory=dict)

    @model_validator(mode='before')
    @classmethod
    def inject_keys(cls, data: Any) -> Any:
        """Let YAML sections omit the name already used as their mapping key."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        data["settings"] = data.get("settings") or {}
        data["triggers"] = {
            key: [dict(definition, process_key=key) for definition in (definitions or [])]
            for key, definitions in (data.get("triggers") or {}).items()
        }
        for section, field in (("populations", "name"), ("roles", "name"), ("applications", "application")):
            data[section] = {
                key: dict(value or {}, **{field: key})
                for key, value in (data.get(section) or {}).items()
            }
        return data


# Type aliases for convenience
Differences = List[Difference]
AccountRequests = List[AccountRequest]
