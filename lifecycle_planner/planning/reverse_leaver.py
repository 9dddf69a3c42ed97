"""
Reverse Leaver Synthesizer for the Lifecycle Planner.

Builds the plan that restores an application's access after a leaver is
reversed. The historical leaver plan is walked twice: the first pass traces
directory renames and moves, the second emits the inverse of every request
(addressed by the pre-rename identifier) and re-adds the roles the leaver
removed, as long as they provision the application being restored. The same
check applies to role removals when IIQ itself is restored.
"""

import logging
from typing import List, Optional, Set, Union

from ..engine.interfaces import BirthrightSource
from ..models import (
    IIQ_APPLICATION,
    ROLE_ATTRIBUTE,
    AccountOperation,
    AccountRequest,
    AttributeOperation,
    IdentitySnapshot,
    LifecycleCategory,
    ProvisioningPlan,
)
from .base_builder import BasePlanBuilder
from .birthright import ProvisioningPlanBuilder
from .helpers import role_request
from .reversal import DiffReversalEngine, RenameTrace

logger = logging.getLogger(__name__)

LEAVER_PLAN_TYPES = ("LEAVER FEATURE", "IMMEDIATE TERMINATION FEATURE")

NON_LEAVER_OPERATIONS = (AccountOperation.CREATE, AccountOperation.ENABLE, AccountOperation.UNLOCK)

ROLE_RESTORE_ARGUMENTS = {"deassignEntitlements": False, "negativeAssignment": False}


class ReverseLeaverSynthesizer(BasePlanBuilder):
    """Restores access removed by a previously executed leaver plan."""

    request_type = "REVERSE LEAVER FEATURE"
    source = "LCM"

    def __init__(
        self,
        birthrights: BirthrightSource,
        reversal_engine: Optional[DiffReversalEngine] = None,
        plan_builder: Optional[ProvisioningPlanBuilder] = None,
    ):
        """
        Initialize the synthesizer.

        Args:
            birthrights: Role catalog used for the role/application check
            reversal_engine: Engine that inverts historical requests
            plan_builder: When given, birthright access the identity now
                qualifies for is added to the restoration plan
        """
        self.birthrights = birthrights
        self.reversal_engine = reversal_engine or DiffReversalEngine()
        self.plan_builder = plan_builder

    def validate_historical_plan(self, historical_plan: ProvisioningPlan) -> bool:
        """
        Check that a plan is a leaver plan that can be reversed.

        Plans without a recorded request type are accepted. A leaver never
        creates, enables or unlocks accounts, so plans that do are rejected.
        """
        request_type = historical_plan.request_type
        if request_type is None:
            logger.debug("Historical plan has no request type, assuming a leaver plan")
        elif request_type not in LEAVER_PLAN_TYPES:
            logger.warning(f"Plan of type {request_type} is not a leaver plan, not reversing it")
            return False

        for account_request in historical_plan.account_requests:
            if account_request.operation in NON_LEAVER_OPERATIONS:
                logger.warning(
                    f"Historical plan {account_request.operation.value}s {account_request.native_identity} "
                    f"on {account_request.application}, not reversing it"
                )
                return False
        return True

    def build_restoration_plan(
        self,
        historical_plan: ProvisioningPlan,
        application_name: str,
        identity: Optional[Union[str, IdentitySnapshot]] = None,
    ) -> Optional[ProvisioningPlan]:
        """
        Build the restoration plan for one application.

        Args:
            historical_plan: Leaver plan that was executed
            application_name: Application whose access is restored
            identity: Identity name or current snapshot; a snapshot also
                tells which accounts are locked

        Returns:
            ProvisioningPlan, or None if there is nothing to restore

        Raises:
            ValueError: If historical_plan is None
        """
        if historical_plan is None:
            raise ValueError("Historical plan is required to build a restoration plan")
        if not self.validate_historical_plan(historical_plan):
            return None

        snapshot = identity if isinstance(identity, IdentitySnapshot) else None
        identity_name = snapshot.name if snapshot is not None else (identity or historical_plan.identity)

        requests = historical_plan.account_requests_for(application_name)

        trace = RenameTrace()
        for account_request in requests:
            trace.record_request(account_request)

        plan = self._new_plan(
            identity_name,
            historical_plan_id=historical_plan.arguments.get("plan_id"),
            application=application_name,
        )

        for account_request in reversed(requests):
            if account_request.application == IIQ_APPLICATION:
                # Role removals come back through role_restore_requests
                account_request = self._without_role_removals(account_request)
            locked = self._locked(snapshot, application_name, trace.current_identity(
                application_name, account_request.native_identity))
            inverse = self.reversal_engine.reverse(account_request, identity_name, trace, locked)
            if inverse is not None:
                self._merge(plan, inverse)

        restored_roles: Set[str] = set()
        for role_add in self.role_restore_requests(historical_plan, application_name):
            role = role_add.attribute_requests[0].value
            if self._add_request(plan, role_add):
                restored_roles.add(role.lower())

        if self.plan_builder is not None and snapshot is not None:
            self._add_requests(
                plan, self._birthright_requests(plan, snapshot, application_name, restored_roles, trace)
            )

        return self._finish(plan)

    def role_restore_requests(self, historical_plan: ProvisioningPlan, application_name: str) -> List[AccountRequest]:
        """Role additions that undo the leaver's role removals for one application."""
        requests = []
        for account_request in historical_plan.account_requests_for(IIQ_APPLICATION):
            for attribute_request in account_request.get_attribute_requests(ROLE_ATTRIBUTE):
                if attribute_request.operation != AttributeOperation.REMOVE:
                    continue
                role = attribute_request.value
                if not self.birthrights.role_belongs_to_application(role, application_name):
                    logger.debug(f"Role {role} does not provision {application_name}, not restoring it")
                    continue
                requests.append(role_request(
                    IIQ_APPLICATION,
                    account_request.native_identity or historical_plan.identity,
                    role,
                    AttributeOperation.ADD,
                    ROLE_RESTORE_ARGUMENTS,
                ))
        return requests

    def _birthright_requests(
        self,
        plan: ProvisioningPlan,
        identity: IdentitySnapshot,
        application_name: str,
        restored_roles: Set[str],
        trace: RenameTrace,
    ) -> List[AccountRequest]:
        rule = self.birthrights.load_birthright_rule(application_name)
        if rule is None or not rule.enabled:
            return []
        requests = []
        for request in self.plan_builder.application_requests(identity, rule, LifecycleCategory.REHIRE):
            roles = [req.value for req in request.get_attribute_requests(ROLE_ATTRIBUTE)]
            if roles and all(str(role).lower() in restored_roles for role in roles):
                continue
            # The snapshot names renamed accounts by their current identifier
            original = request.model_copy(update={
                "native_identity": trace.original_identity(request.application, request.native_identity),
            })
            if request.operation != AccountOperation.MODIFY and any(
                existing.matches(original) for existing in plan.account_requests
            ):
                continue
            requests.append(request)
        return requests

    def _merge(self, plan: ProvisioningPlan, inverse: AccountRequest) -> None:
        """Fold Modify inverses into an earlier Modify on the same account."""
        if inverse.operation == AccountOperation.MODIFY:
            for existing in plan.account_requests:
                if existing.matches(inverse):
                    for attribute_request in inverse.attribute_requests:
                        if attribute_request not in existing.attribute_requests:
                            existing.add(attribute_request)
                    return
        self._add_request(plan, inverse)

    @staticmethod
    def _without_role_removals(account_request: AccountRequest) -> AccountRequest:
        return account_request.model_copy(update={
            "attribute_requests": [
                req for req in account_request.attribute_requests
                if not (req.name == ROLE_ATTRIBUTE and req.operation == AttributeOperation.REMOVE)
            ],
        })

    @staticmethod
    def _locked(identity: Optional[IdentitySnapshot], application: str, native_identity: Optional[str]) -> bool:
        if identity is None:
            return False
        account = identity.find_account(application, native_identity)
        return account is not None and account.locked
