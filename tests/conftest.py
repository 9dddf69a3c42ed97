"""
Shared fixtures for the Lifecycle Planner tests.

The configuration used here mirrors the packaged lifecycle.yaml in a
smaller form so each test can see exactly which triggers and rules apply.
"""

import copy
import os
from datetime import date

import pytest
import yaml

from lifecycle_planner.engine import (
    LifecycleClassifier,
    LifecycleConfigStore,
    PersonaRelationshipEngine,
    PopulationMatcher,
    TriggerMatchEngine,
)
from lifecycle_planner.models import Account, IdentitySnapshot

TODAY = date(2024, 6, 1)

BASE_CONFIG = {
    "settings": {
        "persona_enabled": False,
        "filter_detected_roles": True,
        "disabled_features": [],
        "relationship_drops_to_ignore": ["Alumni"],
    },
    "triggers": {
        "joinerProcess": [
            {"name": "Hired", "predicates": [
                {"attribute": "status", "old_values": "EMPTY,Pre-Hire", "new_values": "Active"},
            ]},
        ],
        "rehireProcess": [
            {"name": "Rehired", "predicates": [
                {"attribute": "status", "old_values": "Terminated", "new_values": "Active"},
            ]},
        ],
        "terminationProcess": [
            {"name": "Terminated", "predicates": [
                {"attribute": "status", "old_values": "*", "new_values": "Terminated"},
            ]},
        ],
        "loaProcess": [
            {"name": "Leave", "predicates": [
                {"attribute": "status", "old_values": "Active", "new_values": "Leave"},
            ]},
        ],
        "ltdProcess": [
            {"name": "Disability", "predicates": [
                {"attribute": "status", "old_values": "Active", "new_values": "Disability"},
            ]},
        ],
        "rtwloaProcess": [
            {"name": "Back from leave", "predicates": [
                {"attribute": "status", "old_values": "Leave", "new_values": "Active"},
            ]},
        ],
        "rtwltdProcess": [
            {"name": "Back from disability", "predicates": [
                {"attribute": "status", "old_values": "Disability", "new_values": "Active"},
            ]},
        ],
        "reverseleaverProcess": [
            {"name": "Termination cancelled", "predicates": [
                {"attribute": "status", "old_values": "Terminated", "new_values": "Reinstated"},
            ]},
        ],
        "moverProcess": [
            {"name": "Department change", "operation": "OR", "predicates": [
                {"attribute": "department", "old_values": "*", "new_values": "*"},
                {"attribute": "title", "old_values": "*", "new_values": "*"},
            ]},
        ],
    },
    "populations": {
        "Employees": {"criteria": {"type": "Employee"}},
        "Contractors": {"criteria": {"type": "Contractor"}},
        "Engineering": {"criteria": {"department": "Engineering"}},
    },
    "roles": {
        "BasicAccess": {"applications": ["Active Directory"], "population": "Employees"},
        "ContractorAccess": {"applications": ["Active Directory"], "population": "Contractors"},
        "EngineeringTools": {"applications": ["GitHub"], "population": "Engineering"},
        "Auditor": {"birthright": False, "applications": ["Active Directory"]},
    },
    "applications": {
        "Active Directory": {
            "roles": "BasicAccess,ContractorAccess",
            "population": "Employees,Contractors",
            "native_identity_template": "CN={displayName},OU=Users,DC=example,DC=com",
            "leaver": {"disable_account": True, "move_ou": "OU=Disabled,DC=example,DC=com"},
            "native_change": {
                "enabled": True,
                "attributes": ["memberOf", "title"],
                "privileged_values": ["CN=Domain Admins,OU=Groups,DC=example,DC=com"],
            },
        },
        "GitHub": {
            "roles": ["EngineeringTools"],
            "population": "department#IIQJoiner#^Engineering$",
            "native_identity_template": "{email}",
            "leaver": {
                "disable_account": False,
                "remove_entitlements": True,
                "entitlement_attributes": ["teams"],
            },
        },
    },
}


def build_config(**overrides):
    """Deep copy of the base configuration with top-level sections replaced."""
    config = copy.deepcopy(BASE_CONFIG)
    for section, value in overrides.items():
        if section == "settings":
            config["settings"].update(value)
        else:
            config[section] = value
    return config


def write_config(path, data, mtime=None):
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))


def make_identity(name="jdoe", accounts=None, roles=None, relationships=None, **attributes):
    """Build an identity snapshot with sensible employee defaults."""
    values = {
        "type": "Employee",
        "status": "Active",
        "department": "Engineering",
        "title": "Engineer",
        "displayName": "John Doe",
        "email": "jdoe@example.com",
    }
    values.update(attributes)
    values = {key: value for key, value in values.items() if value is not None}
    return IdentitySnapshot(
        name=name,
        attributes=values,
        accounts=accounts or [],
        roles=roles or [],
        relationships=relationships,
    )


AD_DN = "CN=John Doe,OU=Users,DC=example,DC=com"


def ad_account(native_identity=AD_DN, **kwargs):
    return Account(application="Active Directory", native_identity=native_identity, **kwargs)


def github_account(native_identity="jdoe@example.com", **kwargs):
    return Account(application="GitHub", native_identity=native_identity, **kwargs)


@pytest.fixture
def config_data():
    return build_config()


@pytest.fixture
def config_store(config_data):
    return LifecycleConfigStore.from_mapping(config_data)


@pytest.fixture
def population_matcher(config_store):
    return PopulationMatcher(config_store)


@pytest.fixture
def trigger_engine(config_store, population_matcher):
    return TriggerMatchEngine(
        config_store,
        population_matcher,
        persona_engine=PersonaRelationshipEngine(config_store.relationship_drops_to_ignore),
        today=lambda: TODAY,
    )


@pytest.fixture
def classifier(trigger_engine):
    return LifecycleClassifier(trigger_engine)
