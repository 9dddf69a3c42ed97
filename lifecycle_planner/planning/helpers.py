"""
Planning Helper Functions for the Lifecycle Planner.

Utility functions shared by the plan builders: directory name handling,
role request construction and plan summaries.
"""

import logging
from typing import Any, Dict, List, Optional

from ldap3.utils.dn import to_dn

from ..models import (
    AccountOperation,
    AccountRequest,
    AttributeOperation,
    AttributeRequest,
    ProvisioningPlan,
    ROLE_ATTRIBUTE,
)

logger = logging.getLogger(__name__)


def split_dn(native_identity: Optional[str]) -> List[str]:
    """
    Split a distinguished name into its RDNs, leaf first.

    Escaped commas stay inside their RDN. Values that are not DNs
    yield an empty list.
    """
    if not native_identity or "=" not in native_identity:
        return []
    return [rdn.strip() for rdn in to_dn(native_identity) if rdn.strip()]


def get_parent_from_native_id(native_identity: Optional[str]) -> Optional[str]:
    """
    Get the container of a DN.

    Args:
        native_identity: e.g. 'CN=jdoe,OU=Users,DC=example,DC=com'

    Returns:
        'OU=Users,DC=example,DC=com', or None if the DN has no parent
    """
    rdns = split_dn(native_identity)
    if len(rdns) < 2:
        return None
    return ",".join(rdns[1:])


def get_leaf_from_native_id(native_identity: Optional[str]) -> Optional[str]:
    """Get the leaf RDN of a DN, e.g. 'CN=jdoe'."""
    rdns = split_dn(native_identity)
    if not rdns:
        return None
    return rdns[0]


def role_request(
    application: str,
    native_identity: Optional[str],
    role: str,
    operation: AttributeOperation,
    arguments: Optional[Dict[str, Any]] = None,
) -> AccountRequest:
    """
    Build a Modify request that adds or removes one role assignment.

    Args:
        application: Application the request targets
        native_identity: Account (or identity) the role is assigned to
        role: Role name
        operation: Add or Remove
        arguments: Extra attribute request arguments

    Returns:
        AccountRequest carrying a single assignedRoles attribute request
    """
    attribute_arguments = {"assignment": True}
    attribute_arguments.update(arguments or {})

    account_request = AccountRequest(
        application=application,
        native_identity=native_identity,
        operation=AccountOperation.MODIFY,
    )
    account_request.add(AttributeRequest(
        name=ROLE_ATTRIBUTE,
        operation=operation,
        value=role,
        arguments=attribute_arguments,
    ))
    return account_request


def plan_summary(plan: Optional[ProvisioningPlan]) -> Dict[str, Any]:
    """
    Create a summary of a plan for display.

    Args:
        plan: Plan to summarize, None for "nothing to do"

    Returns:
        Dictionary with request counts by application and operation
    """
    if plan is None:
        return {"identity": None, "request_type": None, "account_requests": 0, "by_application": {}}

    by_application: Dict[str, Dict[str, int]] = {}
    for request in plan.account_requests:
        counts = by_application.setdefault(request.application, {})
        counts[request.operation.value] = counts.get(request.operation.value, 0) + 1
        for attribute_request in request.attribute_requests:
            key = f"{attribute_request.operation.value} {attribute_request.name}"
            counts[key] = counts.get(key, 0) + 1

    return {
        "identity": plan.identity,
        "request_type": plan.request_type,
        "account_requests": len(plan.account_requests),
        "by_application": by_application,
    }
