"""
Leaver Plan Builder for the Lifecycle Planner.

Builds the plan executed when an identity leaves: birthright roles are
removed and every linked account is handled according to its application's
leaver options (delete, or remove entitlements / move / disable). Leave of
absence and long term disability only disable accounts whose application
disables leavers; roles and entitlements are kept for the return to work.
"""

import logging
from typing import Dict, List, Optional

from ..engine.interfaces import BirthrightSource
from ..models import (
    IIQ_APPLICATION,
    NEW_PARENT_ATTRIBUTE,
    Account,
    AccountOperation,
    AccountRequest,
    AttributeOperation,
    AttributeRequest,
    IdentitySnapshot,
    LeaverOptions,
    LifecycleCategory,
    ProvisioningPlan,
)
from .base_builder import BasePlanBuilder
from .helpers import get_parent_from_native_id, role_request

logger = logging.getLogger(__name__)

LEAVER_REQUEST_TYPES: Dict[LifecycleCategory, str] = {
    LifecycleCategory.LEAVER: "LEAVER FEATURE",
    LifecycleCategory.LEAVE_OF_ABSENCE: "LEAVER LOA FEATURE",
    LifecycleCategory.LONG_TERM_DISABILITY: "LEAVER LTD FEATURE",
}


class LeaverPlanBuilder(BasePlanBuilder):
    """Builds termination, leave of absence and disability plans."""

    def __init__(self, birthrights: BirthrightSource):
        self.birthrights = birthrights

    def build(
        self,
        category: LifecycleCategory,
        identity: IdentitySnapshot,
        application_name: Optional[str] = None,
    ) -> Optional[ProvisioningPlan]:
        """
        Build a leaver plan.

        Args:
            category: LEAVER, LEAVE_OF_ABSENCE or LONG_TERM_DISABILITY
            identity: Identity that is leaving
            application_name: Restrict account handling to one application

        Returns:
            ProvisioningPlan, or None if nothing needs to change
        """
        request_type = LEAVER_REQUEST_TYPES.get(category)
        if request_type is None:
            raise ValueError(f"{category.value} is not a leaver category")

        plan = self._new_plan(identity.name, request_type=request_type)
        temporary = category != LifecycleCategory.LEAVER

        if not temporary and application_name is None:
            self._add_requests(plan, self.role_removal_requests(identity))

        for account in identity.accounts:
            if application_name is not None and account.application != application_name:
                continue
            rule = self.birthrights.load_birthright_rule(account.application)
            if rule is None or rule.leaver is None:
                logger.debug(f"skipping ... no leaver options for application {account.application}")
                continue

            if temporary:
                requests = self._disable(account) if rule.leaver.disable_account else []
            else:
                requests = self.account_requests(account, rule.leaver)
            self._add_requests(plan, requests)

        return self._finish(plan)

    def role_removal_requests(self, identity: IdentitySnapshot) -> List[AccountRequest]:
        """Remove every detected birthright role from the identity."""
        requests = []
        for role_name in identity.roles:
            role = self.birthrights.get_role(role_name)
            if role is None or not role.birthright:
                continue
            requests.append(role_request(IIQ_APPLICATION, identity.name, role_name, AttributeOperation.REMOVE))
        return requests

    def account_requests(self, account: Account, options: LeaverOptions) -> List[AccountRequest]:
        """Requests that take one account through the leaver options."""
        if options.delete_account:
            logger.debug(f"AccountRequest to delete account {account.native_identity} on {account.application}")
            return [AccountRequest(
                application=account.application,
                native_identity=account.native_identity,
                operation=AccountOperation.DELETE,
                arguments={"flow": "AccountsRequest"},
            )]

        requests = []
        if options.remove_entitlements:
            removal = self._remove_entitlements(account, options.entitlement_attributes)
            if removal is not None:
                requests.append(removal)

        if options.move_ou:
            move = self._move(account, options.move_ou)
            if move is not None:
                requests.append(move)

        if options.disable_account:
            requests.extend(self._disable(account))

        return requests

    def _remove_entitlements(self, account: Account, attributes: List[str]) -> Optional[AccountRequest]:
        request = AccountRequest(application=account.application, native_identity=account.native_identity)
        for attribute in attributes:
            value = account.attributes.get(attribute)
            values = value if isinstance(value, (list, tuple, set)) else ([value] if value else [])
            for item in values:
                request.add(AttributeRequest(
                    name=attribute,
                    operation=AttributeOperation.REMOVE,
                    value=item,
                    arguments={"assignment": True},
                ))
        return None if request.is_empty() else request

    def _move(self, account: Account, move_ou: str) -> Optional[AccountRequest]:
        parent = get_parent_from_native_id(account.native_identity)
        if parent is None:
            logger.debug(f"{account.native_identity} is not a DN, not moving it")
            return None
        if parent.lower() == move_ou.lower():
            return None

        logger.debug(f"AccountRequest to move account {account.native_identity} to OU {move_ou}")
        request = AccountRequest(application=account.application, native_identity=account.native_identity)
        request.add(AttributeRequest(name=NEW_PARENT_ATTRIBUTE, operation=AttributeOperation.SET, value=move_ou))
        return request

    def _disable(self, account: Account) -> List[AccountRequest]:
        if account.disabled:
            return []
        return [AccountRequest(
            application=account.application,
            native_identity=account.native_identity,
            operation=AccountOperation.DISABLE,
            arguments={"flow": "AccountsRequest"},
        )]
