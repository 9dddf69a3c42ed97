"""
Base Plan Builder for the Lifecycle Planner.

This module provides the foundation for the joiner, leaver, reverse leaver
and native change plan builders: plan creation, duplicate suppression and
the "nothing to do" convention (an empty plan is returned as None).
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from ..models import AccountRequest, ProvisioningPlan

logger = logging.getLogger(__name__)


class BasePlanBuilder:
    """
    Common plan handling for lifecycle plan builders.

    Subclasses set request_type and call _new_plan/_add_request/_finish.
    """

    request_type: str = ""
    source: str = "Rule"

    def _new_plan(self, identity: Optional[str], **arguments: Any) -> ProvisioningPlan:
        """
        Start an empty plan.

        Args:
            identity: Identity the plan is for
            **arguments: Extra plan arguments (request_type, requester, ...)

        Returns:
            ProvisioningPlan with a plan_id, request type and source
        """
        plan_arguments: Dict[str, Any] = {
            "plan_id": str(uuid.uuid4()),
            "request_type": self.request_type,
            "source": self.source,
        }
        plan_arguments.update({key: value for key, value in arguments.items() if value is not None})
        return ProvisioningPlan(identity=identity, arguments=plan_arguments)

    def _add_request(self, plan: ProvisioningPlan, request: Optional[AccountRequest]) -> bool:
        """
        Add a request unless it is empty or already in the plan.

        Returns:
            True if the request was added
        """
        if request is None or request.is_empty():
            return False
        if any(existing == request for existing in plan.account_requests):
            logger.debug(f"Skipping duplicate {request.operation.value} on {request.application}")
            return False
        plan.add(request)
        return True

    def _add_requests(self, plan: ProvisioningPlan, requests: List[AccountRequest]) -> int:
        return sum(1 for request in requests if self._add_request(plan, request))

    def _finish(self, plan: ProvisioningPlan) -> Optional[ProvisioningPlan]:
        """Return the plan, or None when nothing ended up in it."""
        plan.account_requests = [req for req in plan.account_requests if not req.is_empty()]
        if not plan.account_requests:
            logger.info(f"{self.__class__.__name__}: nothing to provision for {plan.identity}")
            return None

        logger.info(
            f"{self.__class__.__name__}: built {plan.request_type or 'plan'} for {plan.identity} "
            f"with {len(plan.account_requests)} account requests"
        )
        return plan
