"""
Diff Reversal Engine for the Lifecycle Planner.

Computes the inverse of previously executed account and attribute requests,
and of detected attribute differences. Directory renames and moves are
undone with the help of a RenameTrace built over the whole historical plan
before any inverse is emitted, so every reversal addresses the account by
its pre-rename identifier.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from ..engine.interfaces import AccountSnapshotSource
from ..models import (
    NEW_NAME_ATTRIBUTE,
    NEW_PARENT_ATTRIBUTE,
    AccountOperation,
    AccountRequest,
    AttributeOperation,
    AttributeRequest,
    Difference,
    IdentitySnapshot,
)
from .helpers import get_leaf_from_native_id, get_parent_from_native_id

logger = logging.getLogger(__name__)

OPERATION_INVERSES: Dict[AccountOperation, AccountOperation] = {
    AccountOperation.CREATE: AccountOperation.DELETE,
    AccountOperation.DELETE: AccountOperation.CREATE,
    AccountOperation.ENABLE: AccountOperation.DISABLE,
    AccountOperation.DISABLE: AccountOperation.ENABLE,
    AccountOperation.LOCK: AccountOperation.UNLOCK,
    AccountOperation.UNLOCK: AccountOperation.LOCK,
    AccountOperation.MODIFY: AccountOperation.MODIFY,
}

RENAME_ATTRIBUTES = (NEW_PARENT_ATTRIBUTE, NEW_NAME_ATTRIBUTE)


def _rdn(value: str, like: Optional[str]) -> str:
    """Give a bare name the attribute type of an existing leaf ('X' -> 'CN=X')."""
    if "=" in value or not like or "=" not in like:
        return value
    return f"{like.split('=', 1)[0]}={value}"


class RenameTrace:
    """
    Tracks directory renames and moves of accounts inside one historical plan.

    Every identifier an account had along its rename chain maps back to the
    identifier it had before the plan ran.
    """

    def __init__(self):
        self._originals: Dict[Tuple[str, str], str] = {}
        self._currents: Dict[Tuple[str, str], str] = {}

    @staticmethod
    def _key(application: str, native_identity: Optional[str]) -> Tuple[str, str]:
        return application, (native_identity or "").lower()

    def record(self, application: str, native_identity: Optional[str], attribute_request: AttributeRequest) -> bool:
        """
        Fold one attribute request into the trace.

        Args:
            application: Application of the account request
            native_identity: Identifier the historical request used
            attribute_request: Attribute request that may rename or move the account

        Returns:
            True if the request renamed or moved the account
        """
        if attribute_request.name not in RENAME_ATTRIBUTES or not native_identity:
            return False
        if attribute_request.operation != AttributeOperation.SET or not attribute_request.value:
            return False

        original = self.original_identity(application, native_identity)
        current = self.current_identity(application, original)
        leaf = get_leaf_from_native_id(current)
        parent = get_parent_from_native_id(current)

        if attribute_request.name == NEW_PARENT_ATTRIBUTE:
            if leaf is None:
                return False
            renamed = f"{leaf},{attribute_request.value}"
        else:
            name = _rdn(str(attribute_request.value), leaf)
            renamed = f"{name},{parent}" if parent else name

        self._currents[self._key(application, original)] = renamed
        self._originals.setdefault(self._key(application, original), original)
        self._originals[self._key(application, renamed)] = original
        logger.debug(f"Rename trace on {application}: {original} -> {renamed}")
        return True

    def record_request(self, account_request: AccountRequest) -> None:
        for attribute_request in account_request.attribute_requests:
            self.record(account_request.application, account_request.native_identity, attribute_request)

    def original_identity(self, application: str, native_identity: Optional[str]) -> Optional[str]:
        """Identifier the account had before any traced rename."""
        return self._originals.get(self._key(application, native_identity), native_identity)

    def current_identity(self, application: str, native_identity: Optional[str]) -> Optional[str]:
        """Identifier the account has after every traced rename."""
        original = self.original_identity(application, native_identity)
        return self._currents.get(self._key(application, original), original)

    def renamed(self, application: str, native_identity: Optional[str]) -> bool:
        original = self.original_identity(application, native_identity)
        return self._key(application, original) in self._currents


class DiffReversalEngine:
    """Builds inverse requests for executed plans and detected differences."""

    def __init__(self, snapshots: Optional[AccountSnapshotSource] = None):
        """
        Initialize the reversal engine.

        Args:
            snapshots: Account history used when a Set has no captured old value
        """
        self.snapshots = snapshots

    def reverse_operation(self, operation: AccountOperation, locked: bool = False) -> Optional[AccountOperation]:
        """
        Inverse of an account operation.

        Args:
            operation: Operation that was executed
            locked: Whether the account is currently locked

        Returns:
            Inverse operation, or None when a Disable cannot be undone
            because the account is locked
        """
        if operation == AccountOperation.DISABLE and locked:
            logger.info("Account is locked, not re-enabling it")
            return None
        return OPERATION_INVERSES[operation]

    def reverse_attribute(
        self,
        attribute_request: AttributeRequest,
        original_identity: Optional[str] = None,
        snapshot: Optional[Dict[str, Any]] = None,
        recovery: bool = False,
    ) -> Optional[AttributeRequest]:
        """
        Inverse of one attribute request.

        Args:
            attribute_request: Attribute request that was executed
            original_identity: Pre-rename identifier of the account
            snapshot: Most recent captured attributes of the account, if any
            recovery: Whether the executed request was itself a recovery

        Returns:
            Inverse attribute request, or None if it cannot be inverted
        """
        name = attribute_request.name
        arguments = dict(attribute_request.arguments)

        if name == NEW_PARENT_ATTRIBUTE:
            parent = get_parent_from_native_id(original_identity)
            if parent is None:
                logger.warning(f"Cannot restore the container of {original_identity}")
                return None
            return AttributeRequest(name=name, operation=AttributeOperation.SET, value=parent, arguments=arguments)

        if name == NEW_NAME_ATTRIBUTE:
            leaf = get_leaf_from_native_id(original_identity)
            if leaf is None:
                logger.warning(f"Cannot restore the name of {original_identity}")
                return None
            if "=" not in str(attribute_request.value):
                leaf = leaf.split("=", 1)[1]
            return AttributeRequest(name=name, operation=AttributeOperation.SET, value=leaf, arguments=arguments)

        if attribute_request.operation == AttributeOperation.ADD:
            return AttributeRequest(name=name, operation=AttributeOperation.REMOVE,
                                    value=attribute_request.value, arguments=arguments)

        if attribute_request.operation == AttributeOperation.REMOVE:
            return AttributeRequest(name=name, operation=AttributeOperation.ADD,
                                    value=attribute_request.value, arguments=arguments)

        if attribute_request.old_value is not None:
            return AttributeRequest(name=name, operation=AttributeOperation.SET,
                                    value=attribute_request.old_value,
                                    old_value=attribute_request.value, arguments=arguments)

        if snapshot is not None:
            value = snapshot.get(name, "")
            return AttributeRequest(name=name, operation=AttributeOperation.SET, value=value,
                                    old_value=attribute_request.value, arguments=arguments)

        if recovery:
            return AttributeRequest(name=name, operation=AttributeOperation.SET, value="", arguments=arguments)

        logger.info(f"No previous value for {name}, revoking {attribute_request.value!r} instead")
        return AttributeRequest(name=name, operation=AttributeOperation.REMOVE,
                                value=attribute_request.value, arguments=arguments)

    def reverse(
        self,
        account_request: AccountRequest,
        identity: Optional[Union[str, IdentitySnapshot]] = None,
        trace: Optional[RenameTrace] = None,
        locked: bool = False,
    ) -> Optional[AccountRequest]:
        """
        Inverse of one executed account request.

        The inverse addresses the account by its identifier from before the
        traced renames; the identifier it has now is passed along in the
        'current_native_identity' argument.

        Args:
            account_request: Request that was executed
            identity: Identity owning the account, used for snapshot lookups
            trace: Rename trace built over the historical plan
            locked: Whether the account is currently locked

        Returns:
            Inverse request, or None if the request cannot be inverted
        """
        operation = self.reverse_operation(account_request.operation, locked)
        if operation is None:
            return None

        trace = trace or RenameTrace()
        application = account_request.application
        original = trace.original_identity(application, account_request.native_identity)
        current = trace.current_identity(application, original)

        arguments = dict(account_request.arguments)
        if current and original and current.lower() != original.lower():
            arguments["current_native_identity"] = current
        inverse = AccountRequest(
            application=application,
            native_identity=original,
            operation=operation,
            arguments=arguments,
        )

        if operation == AccountOperation.DELETE:
            return inverse

        snapshot = None
        if self.snapshots is not None and identity is not None and original:
            snapshot = self.snapshots.most_recent_account_snapshot(identity, application, original)

        for attribute_request in account_request.attribute_requests:
            reversed_request = self.reverse_attribute(attribute_request, original, snapshot)
            if reversed_request is not None:
                inverse.add(reversed_request)

        if operation == AccountOperation.CREATE and snapshot:
            present = {req.name for req in inverse.attribute_requests}
            for name, value in snapshot.items():
                if name not in present:
                    inverse.add(AttributeRequest(name=name, operation=AttributeOperation.SET, value=value))

        return inverse

    def reverse_difference(self, difference: Difference, recovery: bool = False) -> List[AttributeRequest]:
        """
        Attribute requests that undo a detected difference.

        Args:
            difference: Change found on the account
            recovery: Whether the change was made by a recovery

        Returns:
            Attribute requests with the assignment argument set
        """
        arguments = {"assignment": True}

        if difference.multi:
            requests = [
                AttributeRequest(name=difference.attribute, operation=AttributeOperation.REMOVE,
                                 value=value, arguments=dict(arguments))
                for value in difference.added_values or []
            ]
            requests.extend(
                AttributeRequest(name=difference.attribute, operation=AttributeOperation.ADD,
                                 value=value, arguments=dict(arguments))
                for value in difference.removed_values or []
            )
            return requests

        if difference.old_value is not None:
            return [AttributeRequest(name=difference.attribute, operation=AttributeOperation.SET,
                                     value=difference.old_value, old_value=difference.new_value,
                                     arguments=arguments)]
        if recovery:
            return [AttributeRequest(name=difference.attribute, operation=AttributeOperation.SET,
                                     value="", arguments=arguments)]
        return [AttributeRequest(name=difference.attribute, operation=AttributeOperation.REMOVE,
                                 value=difference.new_value, arguments=arguments)]

    def invert_difference(self, difference: Difference) -> Difference:
        """Difference that takes the new value back to the old one."""
        if difference.multi:
            return Difference(
                attribute=difference.attribute,
                added_values=list(difference.removed_values or []),
                removed_values=list(difference.added_values or []),
            )
        return Difference(
            attribute=difference.attribute,
            old_value=difference.new_value,
            new_value=difference.old_value,
        )
