"""
Tests for the LeaverPlanBuilder.
"""

import pytest

from lifecycle_planner.models import (
    IIQ_APPLICATION,
    NEW_PARENT_ATTRIBUTE,
    ROLE_ATTRIBUTE,
    AccountOperation,
    AttributeOperation,
    LeaverOptions,
    LifecycleCategory,
)
from lifecycle_planner.planning import LeaverPlanBuilder
from lifecycle_planner.planning.helpers import get_leaf_from_native_id, get_parent_from_native_id, split_dn

from conftest import AD_DN, ad_account, github_account, make_identity


class TestDirectoryNames:
    """Test cases for DN helpers."""

    def test_split_dn(self):
        assert split_dn(AD_DN) == ["CN=John Doe", "OU=Users", "DC=example", "DC=com"]

    def test_escaped_comma_stays_in_rdn(self):
        assert get_leaf_from_native_id(r"CN=Doe\, John,OU=Users,DC=example,DC=com") == r"CN=Doe\, John"

    def test_parent_and_leaf(self):
        assert get_parent_from_native_id(AD_DN) == "OU=Users,DC=example,DC=com"
        assert get_leaf_from_native_id(AD_DN) == "CN=John Doe"

    @pytest.mark.parametrize("value", [None, "", "jdoe@example.com"])
    def test_non_dn_values(self, value):
        assert split_dn(value) == []
        assert get_parent_from_native_id(value) is None


class TestLeaverPlanBuilder:
    """Test cases for leaver, leave of absence and disability plans."""

    @pytest.fixture
    def builder(self, config_store):
        return LeaverPlanBuilder(config_store)

    @pytest.fixture
    def leaver(self):
        return make_identity(
            roles=["BasicAccess", "EngineeringTools", "Auditor"],
            accounts=[
                ad_account(),
                github_account(attributes={"teams": ["platform", "oncall"]}),
                ad_account("CN=jdoe-admin,OU=Admins,DC=example,DC=com", disabled=True),
            ],
        )

    def test_full_leaver_plan(self, builder, leaver):
        plan = builder.build(LifecycleCategory.LEAVER, leaver)
        assert plan.request_type == "LEAVER FEATURE"

        summary = [(r.application, r.native_identity, r.operation) for r in plan.account_requests]
        assert summary == [
            (IIQ_APPLICATION, "jdoe", AccountOperation.MODIFY),
            (IIQ_APPLICATION, "jdoe", AccountOperation.MODIFY),
            ("Active Directory", AD_DN, AccountOperation.MODIFY),
            ("Active Directory", AD_DN, AccountOperation.DISABLE),
            ("GitHub", "jdoe@example.com", AccountOperation.MODIFY),
            ("Active Directory", "CN=jdoe-admin,OU=Admins,DC=example,DC=com", AccountOperation.MODIFY),
        ]

    def test_birthright_roles_are_removed_from_identity(self, builder, leaver):
        plan = builder.build(LifecycleCategory.LEAVER, leaver)
        removed = [
            req.value
            for request in plan.account_requests_for(IIQ_APPLICATION)
            for req in request.get_attribute_requests(ROLE_ATTRIBUTE)
            if req.operation == AttributeOperation.REMOVE
        ]
        assert removed == ["BasicAccess", "EngineeringTools"]

    def test_account_is_moved_to_leaver_ou(self, builder, leaver):
        plan = builder.build(LifecycleCategory.LEAVER, leaver)
        move = plan.account_requests[2].get_attribute_requests(NEW_PARENT_ATTRIBUTE)[0]
        assert move.operation == AttributeOperation.SET
        assert move.value == "OU=Disabled,DC=example,DC=com"

    def test_entitlements_are_removed(self, builder, leaver):
        plan = builder.build(LifecycleCategory.LEAVER, leaver)
        github = plan.account_requests_for("GitHub")[0]
        assert [(r.operation, r.value) for r in github.get_attribute_requests("teams")] == [
            (AttributeOperation.REMOVE, "platform"),
            (AttributeOperation.REMOVE, "oncall"),
        ]

    def test_already_moved_account_is_only_disabled(self, builder):
        identity = make_identity(accounts=[ad_account("CN=John Doe,OU=Disabled,DC=example,DC=com")])
        plan = builder.build(LifecycleCategory.LEAVER, identity)
        assert [r.operation for r in plan.account_requests] == [AccountOperation.DISABLE]

    def test_delete_is_exclusive(self, builder):
        options = LeaverOptions(delete_account=True, remove_entitlements=True, move_ou="OU=X")
        requests = builder.account_requests(ad_account(), options)
        assert [r.operation for r in requests] == [AccountOperation.DELETE]

    @pytest.mark.parametrize("category, request_type", [
        (LifecycleCategory.LEAVE_OF_ABSENCE, "LEAVER LOA FEATURE"),
        (LifecycleCategory.LONG_TERM_DISABILITY, "LEAVER LTD FEATURE"),
    ])
    def test_temporary_leave_only_disables(self, builder, leaver, category, request_type):
        plan = builder.build(category, leaver)
        assert plan.request_type == request_type
        assert [(r.application, r.operation) for r in plan.account_requests] == [
            ("Active Directory", AccountOperation.DISABLE),
        ]

    def test_application_filter_skips_role_removal(self, builder, leaver):
        plan = builder.build(LifecycleCategory.LEAVER, leaver, "GitHub")
        assert [r.application for r in plan.account_requests] == ["GitHub"]

    def test_nothing_to_do(self, builder):
        identity = make_identity(accounts=[ad_account("CN=x,OU=Disabled,DC=example,DC=com", disabled=True)])
        assert builder.build(LifecycleCategory.LEAVER, identity) is None

    def test_non_leaver_category_rejected(self, builder):
        with pytest.raises(ValueError):
            builder.build(LifecycleCategory.JOINER, make_identity())
