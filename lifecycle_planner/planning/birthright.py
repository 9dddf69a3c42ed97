"""
Provisioning Plan Builder for the Lifecycle Planner.

Turns a lifecycle category into a forward provisioning plan using the
per-application birthright rules:

- eligible applications get their missing birthright roles added, or an
  account created when there are no roles to add and no account exists yet
- birthright roles whose population no longer matches are removed
- rehires and returns to work also re-enable disabled accounts
- leaver categories are delegated to the LeaverPlanBuilder
"""

import logging
from typing import Dict, List, Optional

from ..engine.interfaces import BirthrightSource, NamingPolicy
from ..engine.population import PopulationMatcher
from ..expressions import PopulationList
from ..models import (
    AccountOperation,
    AccountRequest,
    AttributeOperation,
    BirthrightRule,
    IdentitySnapshot,
    LifecycleCategory,
    ProvisioningPlan,
)
from .base_builder import BasePlanBuilder
from .helpers import role_request
from .leaver import LEAVER_REQUEST_TYPES, LeaverPlanBuilder

logger = logging.getLogger(__name__)

FORWARD_REQUEST_TYPES: Dict[LifecycleCategory, str] = {
    LifecycleCategory.JOINER: "JOINER FEATURE",
    LifecycleCategory.REHIRE: "JOINER REHIRE FEATURE",
    LifecycleCategory.MOVER: "MOVER FEATURE",
    LifecycleCategory.RETURN_FROM_LOA: "JOINER LOA FEATURE",
    LifecycleCategory.RETURN_FROM_LTD: "JOINER LTD FEATURE",
}

REENABLE_CATEGORIES = (
    LifecycleCategory.REHIRE,
    LifecycleCategory.RETURN_FROM_LOA,
    LifecycleCategory.RETURN_FROM_LTD,
)


class ProvisioningPlanBuilder(BasePlanBuilder):
    """Builds forward plans from birthright configuration."""

    def __init__(
        self,
        birthrights: BirthrightSource,
        population_matcher: PopulationMatcher,
        naming_policy: Optional[NamingPolicy] = None,
        leaver_builder: Optional[LeaverPlanBuilder] = None,
    ):
        """
        Initialize the plan builder.

        Args:
            birthrights: Birthright rules and role catalog
            population_matcher: Decides application eligibility
            naming_policy: Names accounts that need to be created
            leaver_builder: Builds plans for leaver categories
        """
        self.birthrights = birthrights
        self.population_matcher = population_matcher
        self.naming_policy = naming_policy
        self.leaver_builder = leaver_builder or LeaverPlanBuilder(birthrights)

    def build(
        self,
        category: LifecycleCategory,
        identity: IdentitySnapshot,
        application_name: Optional[str] = None,
    ) -> Optional[ProvisioningPlan]:
        """
        Build the forward plan for a classified transition.

        Args:
            category: Lifecycle category returned by the classifier
            identity: Current identity snapshot
            application_name: Restrict the plan to one application

        Returns:
            ProvisioningPlan, or None if there is nothing to provision

        Raises:
            ValueError: If identity is None
        """
        if identity is None:
            raise ValueError("Identity snapshot is required to build a plan")

        if category in LEAVER_REQUEST_TYPES:
            return self.leaver_builder.build(category, identity, application_name)

        request_type = FORWARD_REQUEST_TYPES.get(category)
        if request_type is None:
            logger.info(f"{category.value} has no forward birthright plan")
            return None

        plan = self._new_plan(identity.name, request_type=request_type)
        for application in self._applications(application_name):
            rule = self.birthrights.load_birthright_rule(application)
            if rule is None or not rule.enabled:
                continue
            self._add_requests(plan, self.application_requests(identity, rule, category))

        return self._finish(plan)

    def application_requests(
        self,
        identity: IdentitySnapshot,
        rule: BirthrightRule,
        category: LifecycleCategory = LifecycleCategory.JOINER,
    ) -> List[AccountRequest]:
        """Requests one application contributes to a forward plan."""
        requests: List[AccountRequest] = []
        native_identity = self._native_identity(identity, rule.application)
        eligible = self.is_eligible(identity, rule)

        if eligible:
            roles = self.roles_to_add(identity, rule)
            if roles:
                for role in roles:
                    requests.append(role_request(rule.application, native_identity, role, AttributeOperation.ADD))
            else:
                create = self.create_account_request(identity, rule)
                if create is not None:
                    requests.append(create)

        for role in self.roles_to_remove(identity, rule):
            requests.append(role_request(rule.application, native_identity, role, AttributeOperation.REMOVE))

        if eligible and category in REENABLE_CATEGORIES:
            for account in identity.accounts_for(rule.application):
                if account.disabled:
                    requests.append(AccountRequest(
                        application=rule.application,
                        native_identity=account.native_identity,
                        operation=AccountOperation.ENABLE,
                    ))

        return requests

    def is_eligible(self, identity: IdentitySnapshot, rule: BirthrightRule) -> bool:
        """Population matched, or unconditional when the rule has no population."""
        if rule.population_malformed:
            return False
        if rule.expression is None:
            return True
        if not isinstance(rule.expression, PopulationList):
            return self.population_matcher.matches(identity, rule.expression)

        matched = self.population_matcher.matching_populations(identity, rule.expression)
        if matched:
            logger.debug(f"{identity.name} qualifies for {rule.application} through {', '.join(matched)}")
        return bool(matched)

    def roles_to_add(self, identity: IdentitySnapshot, rule: BirthrightRule) -> List[str]:
        """
        Configured birthright roles the identity should receive.

        Roles already detected on the identity are skipped unless the rule
        (or the deployment default) turns detected-role filtering off.
        """
        if not self.is_eligible(identity, rule):
            return []

        filter_detected = rule.filter_detected_roles
        if filter_detected is None:
            filter_detected = self.birthrights.filter_detected_roles_default()
        detected = {role.lower() for role in identity.roles}

        roles = []
        for role_name in rule.roles:
            role = self.birthrights.get_role(role_name)
            if role is not None and not role.birthright:
                logger.debug(f"{role_name} is not a birthright role, skipping")
                continue
            if role is not None and role.population:
                if not self.population_matcher.in_population(identity, role.population):
                    continue
            if filter_detected and role_name.lower() in detected:
                continue
            if role_name not in roles:
                roles.append(role_name)
        return roles

    def roles_to_remove(self, identity: IdentitySnapshot, rule: BirthrightRule) -> List[str]:
        """
        Detected birthright roles of this application the identity no longer qualifies for.

        A role is removed when it is no longer listed on the rule, when the
        application's population or regex stopped matching, or when the
        role's own population stopped matching.
        """
        eligible = self.is_eligible(identity, rule)
        listed = {role.lower() for role in rule.roles}

        roles = []
        for role_name in identity.roles:
            role = self.birthrights.get_role(role_name)
            if role is None or not role.birthright:
                continue
            if not self.birthrights.role_belongs_to_application(role_name, rule.application):
                continue

            if role_name.lower() not in listed:
                reason = "no longer listed"
            elif not eligible:
                reason = "population no longer matches"
            elif role.population and not self.population_matcher.in_population(identity, role.population):
                reason = f"left population {role.population}"
            else:
                continue

            logger.debug(f"Removing {role_name} from {identity.name} on {rule.application}: {reason}")
            if role_name not in roles:
                roles.append(role_name)
        return roles

    def create_account_request(self, identity: IdentitySnapshot, rule: BirthrightRule) -> Optional[AccountRequest]:
        """Create request for an application the identity has no account on."""
        if identity.has_account(rule.application):
            return None

        native_identity = None
        if self.naming_policy is not None:
            native_identity = self.naming_policy.resolve_native_identity(rule.application, identity)
        if native_identity is None:
            logger.info(f"No native identity resolved for {identity.name} on {rule.application}")

        return AccountRequest(
            application=rule.application,
            native_identity=native_identity,
            operation=AccountOperation.CREATE,
            arguments={"flow": "AccountsRequest"},
        )

    def _applications(self, application_name: Optional[str]) -> List[str]:
        if application_name is not None:
            return [application_name]
        return sorted(self.birthrights.birthright_applications())

    def _native_identity(self, identity: IdentitySnapshot, application: str) -> Optional[str]:
        account = identity.find_account(application)
        if account is not None:
            return account.native_identity
        if self.naming_policy is not None:
            return self.naming_policy.resolve_native_identity(application, identity)
        return None
