"""
Native Change Detection for the Lifecycle Planner.

A native change is an account change made directly on the application
instead of through a provisioning plan. The detector compares the
configured attributes of an account before and after aggregation and drops
whatever a pending plan asked for. The recovery builder turns detections
into a plan that puts the accounts back the way they were.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from ..engine.differences import diff_attributes
from ..engine.interfaces import BirthrightSource, TriggerSource
from ..models import (
    AccountOperation,
    AccountRequest,
    AttributeOperation,
    Difference,
    NativeChangeDetection,
    ProvisioningPlan,
)
from .base_builder import BasePlanBuilder
from .reversal import DiffReversalEngine

logger = logging.getLogger(__name__)

NATIVE_CHANGE_FEATURE = "NATIVE CHANGE DETECTION FEATURE"


def _lower(values: Iterable[Any]) -> List[str]:
    return [str(value).lower() for value in values]


class NativeChangeDetector:
    """Finds account changes that did not come from a provisioning plan."""

    def __init__(self, birthrights: BirthrightSource, triggers: Optional[TriggerSource] = None):
        self.birthrights = birthrights
        self.triggers = triggers

    def detect(
        self,
        identity: str,
        application: str,
        native_identity: str,
        old_attributes: Optional[Dict[str, Any]],
        new_attributes: Optional[Dict[str, Any]],
        operation: AccountOperation = AccountOperation.MODIFY,
        pending_plans: Optional[List[ProvisioningPlan]] = None,
    ) -> Optional[NativeChangeDetection]:
        """
        Detect a native change on one account.

        Args:
            identity: Identity owning the account
            application: Application the change was seen on
            native_identity: Account identifier
            old_attributes: Account attributes before the change, None for a new account
            new_attributes: Account attributes after the change, None for a deleted account
            operation: Create, Modify or Delete as seen on the application
            pending_plans: Plans in flight for the identity

        Returns:
            NativeChangeDetection, or None if nothing native happened
        """
        if self.triggers is not None and self.triggers.is_feature_disabled(NATIVE_CHANGE_FEATURE):
            logger.debug(f"{NATIVE_CHANGE_FEATURE} is disabled")
            return None

        rule = self.birthrights.load_birthright_rule(application)
        if rule is None or not rule.native_change.enabled:
            logger.debug(f"Native change detection is not enabled for {application}")
            return None
        settings = rule.native_change
        if operation not in settings.operations:
            logger.debug(f"{operation.value} is not watched for native changes on {application}")
            return None

        pending = self._pending_requests(application, native_identity, pending_plans or [])
        if operation != AccountOperation.MODIFY and any(req.operation == operation for req in pending):
            logger.debug(f"{operation.value} of {native_identity} was requested by a pending plan")
            return None

        attributes = settings.attributes or None
        differences = []
        for difference in diff_attributes(old_attributes, new_attributes, attributes):
            difference = self._filter_requested(difference, pending)
            if difference is not None:
                differences.append(difference)

        if not differences and operation == AccountOperation.MODIFY:
            return None

        detection = NativeChangeDetection(
            identity=identity,
            application=application,
            native_identity=native_identity,
            operation=operation,
            differences=differences,
        )
        logger.info(
            f"Native {operation.value} detected on {application} for {identity}: "
            f"{len(differences)} attribute changes"
        )
        return detection

    @staticmethod
    def _pending_requests(
        application: str,
        native_identity: str,
        pending_plans: List[ProvisioningPlan],
    ) -> List[AccountRequest]:
        requests = []
        for plan in pending_plans:
            for request in plan.account_requests_for(application):
                if (request.native_identity or "").lower() == native_identity.lower():
                    requests.append(request)
        return requests

    @staticmethod
    def _filter_requested(difference: Difference, pending: List[AccountRequest]) -> Optional[Difference]:
        """Drop the parts of a difference that a pending plan asked for."""
        requested: Dict[AttributeOperation, List[str]] = {op: [] for op in AttributeOperation}
        for request in pending:
            for attribute_request in request.get_attribute_requests(difference.attribute):
                values = attribute_request.value
                values = values if isinstance(values, (list, tuple, set)) else [values]
                requested[attribute_request.operation].extend(_lower(values))

        if difference.multi:
            added = [v for v in difference.added_values or []
                     if str(v).lower() not in requested[AttributeOperation.ADD] + requested[AttributeOperation.SET]]
            removed = [v for v in difference.removed_values or []
                       if str(v).lower() not in requested[AttributeOperation.REMOVE]]
            if not added and not removed:
                return None
            return Difference(attribute=difference.attribute, added_values=added, removed_values=removed)

        if difference.new_value is not None and str(difference.new_value).lower() in requested[AttributeOperation.SET]:
            return None
        if difference.new_value is None and str(difference.old_value).lower() in requested[AttributeOperation.REMOVE]:
            return None
        return difference


class NativeChangeRecoveryBuilder(BasePlanBuilder):
    """Builds plans that undo native changes."""

    request_type = NATIVE_CHANGE_FEATURE

    def __init__(
        self,
        birthrights: Optional[BirthrightSource] = None,
        reversal_engine: Optional[DiffReversalEngine] = None,
    ):
        self.birthrights = birthrights
        self.reversal_engine = reversal_engine or DiffReversalEngine()

    def build_recovery_plan(
        self,
        identity_name: str,
        detections: List[NativeChangeDetection],
        privileged_only: bool = False,
    ) -> Optional[ProvisioningPlan]:
        """
        Build the plan that reverts native changes.

        Args:
            identity_name: Identity the detections belong to
            detections: Detected native changes
            privileged_only: Only revert values listed as privileged for the application

        Returns:
            ProvisioningPlan, or None if nothing needs reverting
        """
        plan = self._new_plan(identity_name)

        for detection in detections:
            operation = self.reversal_engine.reverse_operation(detection.operation)
            if operation is None:
                continue
            recovery = detection.operation == AccountOperation.DELETE
            differences = self._differences(detection, privileged_only)
            if privileged_only and not differences:
                continue

            request = AccountRequest(
                application=detection.application,
                native_identity=detection.native_identity,
                operation=operation,
                arguments={"nativeChange": True},
            )
            if operation != AccountOperation.DELETE:
                for difference in differences:
                    for attribute_request in self.reversal_engine.reverse_difference(difference, recovery):
                        request.add(attribute_request)

            self._add_request(plan, request)

        return self._finish(plan)

    def _differences(self, detection: NativeChangeDetection, privileged_only: bool) -> List[Difference]:
        if not privileged_only:
            return list(detection.differences)

        privileged = []
        if self.birthrights is not None:
            rule = self.birthrights.load_birthright_rule(detection.application)
            if rule is not None:
                privileged = _lower(rule.native_change.privileged_values)

        differences = []
        for difference in detection.differences:
            if difference.multi:
                added = [v for v in difference.added_values or [] if str(v).lower() in privileged]
                if added:
                    differences.append(Difference(attribute=difference.attribute, added_values=added, removed_values=[]))
            elif difference.new_value is not None and str(difference.new_value).lower() in privileged:
                differences.append(difference)
        return differences
