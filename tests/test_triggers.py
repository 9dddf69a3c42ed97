"""
Tests for the TriggerMatchEngine.
"""

from datetime import date
from unittest.mock import Mock

import pytest

from lifecycle_planner.engine import LifecycleConfigStore, PopulationMatcher, TriggerMatchEngine
from lifecycle_planner.models import (
    CombinationMode,
    TriggerDefinition,
    TriggerKind,
    TriggerPredicate,
)

from conftest import TODAY, build_config, make_identity


def engine_for(triggers, **settings):
    store = LifecycleConfigStore.from_mapping(build_config(triggers=triggers, settings=settings))
    return TriggerMatchEngine(store, PopulationMatcher(store), today=lambda: TODAY)


def single(predicate, operation="AND", kind="hr_event"):
    return {"testProcess": [{"name": "test", "operation": operation, "kind": kind, "predicates": [predicate]}]}


class TestTriggerPreconditions:
    """Test cases for the checks made before predicates are evaluated."""

    def test_current_required(self, trigger_engine):
        with pytest.raises(ValueError):
            trigger_engine.allowed(None, make_identity(), "moverProcess", "MOVER FEATURE")

    def test_disabled_feature(self):
        engine = engine_for(single({"attribute": "title", "old_values": "*", "new_values": "*"}),
                            disabled_features=["MOVER FEATURE"])
        previous = make_identity(title="Engineer")
        current = make_identity(title="Lead")
        assert not engine.allowed(current, previous, "testProcess", "MOVER FEATURE")
        assert engine.allowed(current, previous, "testProcess", "OTHER FEATURE")

    def test_previous_required_except_for_joiner(self, trigger_engine):
        current = make_identity(status="Terminated")
        assert not trigger_engine.allowed(current, None, "terminationProcess", "LEAVER FEATURE")

    def test_uncorrelated_only_terminates(self, trigger_engine):
        previous = make_identity(status="Active")
        current = make_identity(status="Terminated").model_copy(update={"correlated": False})
        assert trigger_engine.allowed(current, previous, "terminationProcess", "LEAVER FEATURE")

        moved = make_identity(title="Lead").model_copy(update={"correlated": False})
        assert not trigger_engine.allowed(moved, previous, "moverProcess", "MOVER FEATURE")

    def test_service_identity_skipped(self, trigger_engine):
        previous = make_identity(status="Active")
        current = make_identity(status="Terminated", serviceCube="true")
        assert not trigger_engine.allowed(current, previous, "terminationProcess", "LEAVER FEATURE")

    def test_ignore_trigger_check(self, trigger_engine):
        identity = make_identity()
        assert trigger_engine.allowed(identity, identity, "unconfigured", "X FEATURE", ignore_trigger_check=True)

    def test_missing_configuration_is_not_allowed(self, trigger_engine):
        previous = make_identity(title="Engineer")
        current = make_identity(title="Lead")
        assert not trigger_engine.allowed(current, previous, "unconfiguredProcess", "X FEATURE")

    def test_disabled_definition_is_skipped(self):
        triggers = {"testProcess": [{
            "disabled": True,
            "predicates": [{"attribute": "title", "old_values": "*", "new_values": "*"}],
        }]}
        engine = engine_for(triggers)
        assert not engine.allowed(make_identity(title="Lead"), make_identity(title="Eng"), "testProcess", "F")


class TestHRPredicates:
    """Test cases for HR attribute predicates."""

    @pytest.mark.parametrize("old_values, new_values, old, new, expected", [
        ("Active", "Terminated", "Active", "Terminated", True),
        ("Active", "Terminated", "Leave", "Terminated", False),
        ("*", "Terminated", "Leave", "Terminated", True),
        ("IGNORE", "Terminated,Retired", "Active", "retired", True),
        ("EMPTY", "*", None, "Sales", True),
        ("EMPTY", "*", "Eng", "Sales", False),
        ("*", "EMPTY", "Sales", None, True),
        ("EMPTY,Pre-Hire", "Active", None, "Active", True),
        ("Active", "Term", "Active", "Terminated", False),
    ])
    def test_value_tokens(self, old_values, new_values, old, new, expected):
        engine = engine_for(single({"attribute": "status", "old_values": old_values, "new_values": new_values}))
        previous = make_identity(status=old)
        current = make_identity(status=new)
        assert engine.allowed(current, previous, "testProcess", "F") is expected

    def test_case_only_change_is_no_change(self):
        engine = engine_for(single({"attribute": "title", "old_values": "*", "new_values": "*"}))
        assert not engine.allowed(make_identity(title="LEAD"), make_identity(title="lead"), "testProcess", "F")

    def test_regex_on_new_value(self):
        engine = engine_for(single({"attribute": "title", "old_values": "IGNORE", "new_values": "*",
                                    "regex": "^Senior"}))
        assert engine.allowed(make_identity(title="Senior Engineer"), make_identity(title="Engineer"),
                              "testProcess", "F")
        assert not engine.allowed(make_identity(title="Staff Engineer"), make_identity(title="Engineer"),
                                  "testProcess", "F")

    def test_regex_is_compiled_at_load(self):
        assert TriggerPredicate(attribute="title", regex="^Senior").pattern.search("Senior Engineer")

        predicate = TriggerPredicate(attribute="title", regex="([")
        assert predicate.regex_malformed
        assert predicate.pattern is None

    def test_unusable_regex_is_a_non_match(self):
        engine = engine_for(single({"attribute": "title", "old_values": "*", "new_values": "*", "regex": "(["}))
        assert not engine.allowed(make_identity(title="Lead"), make_identity(title="Engineer"),
                                  "testProcess", "F")

    def test_override_on_no_change_in_and_mode(self):
        triggers = {"testProcess": [{"operation": "AND", "predicates": [
            {"attribute": "title", "old_values": "*", "new_values": "*"},
            {"attribute": "type", "new_values": "Employee", "override_on_no_change": True},
        ]}]}
        engine = engine_for(triggers)
        assert engine.allowed(make_identity(title="Lead"), make_identity(title="Eng"), "testProcess", "F")

    def test_unchanged_value_does_not_fire_without_override(self):
        triggers = {"testProcess": [{"operation": "AND", "predicates": [
            {"attribute": "title", "old_values": "*", "new_values": "*"},
            {"attribute": "type", "new_values": "Employee"},
        ]}]}
        engine = engine_for(triggers)
        assert not engine.allowed(make_identity(title="Lead"), make_identity(title="Eng"), "testProcess", "F")

    def test_or_mode(self):
        triggers = {"testProcess": [{"operation": "OR", "predicates": [
            {"attribute": "department", "old_values": "*", "new_values": "*"},
            {"attribute": "title", "old_values": "*", "new_values": "*"},
        ]}]}
        engine = engine_for(triggers)
        assert engine.allowed(make_identity(title="Lead"), make_identity(title="Eng"), "testProcess", "F")

    def test_multi_valued_any_change(self):
        engine = engine_for(single({"attribute": "groups", "old_values": "*", "new_values": "*"}))
        assert engine.allowed(make_identity(groups=["a", "b"]), make_identity(groups=["a"]), "testProcess", "F")

    def test_multi_valued_added_value(self):
        engine = engine_for(single({"attribute": "groups", "old_values": "IGNORE", "new_values": "admins"}))
        assert engine.allowed(make_identity(groups=["users", "admins"]), make_identity(groups=["users"]),
                              "testProcess", "F")
        assert not engine.allowed(make_identity(groups=["admins", "ops"]), make_identity(groups=["admins"]),
                                  "testProcess", "F")

    def test_population_joined(self):
        engine = engine_for(single({"attribute": "POPULATION", "old_values": "IGNORE",
                                    "new_values": "Contractors"}))
        assert engine.allowed(make_identity(type="Contractor"), make_identity(type="Employee"), "testProcess", "F")
        assert not engine.allowed(make_identity(type="Contractor", title="X"), make_identity(type="Contractor"),
                                  "testProcess", "F")

    def test_population_left(self):
        engine = engine_for(single({"attribute": "POPULATION", "old_values": "Employees",
                                    "new_values": "IGNORE"}))
        assert engine.allowed(make_identity(type="Contractor"), make_identity(type="Employee"), "testProcess", "F")


class TestDatePredicates:
    """Test cases for DATE and DATE CLEARED."""

    @pytest.mark.parametrize("value, operation, expected", [
        ("2024-06-01", "GREATEREQUAL", True),
        ("2024-06-01", "LESSEQUAL", True),
        ("2024-06-01", "EQUAL", True),
        ("2024-07-01", "GREATEREQUAL", True),
        ("2024-07-01", "LESSEQUAL", False),
        ("2024-05-01", "LESSEQUAL", True),
        ("2024-05-01", "GREATEREQUAL", False),
        ("2024-05-01", "EQUAL", False),
        ("not a date", "GREATEREQUAL", False),
    ])
    def test_date_assigned(self, value, operation, expected):
        engine = engine_for(single({"attribute": "endDate", "new_values": "DATE",
                                    "date_format": "%Y-%m-%d", "date_operation": operation}))
        previous = make_identity(endDate=None)
        current = make_identity(endDate=value)
        assert engine.allowed(current, previous, "testProcess", "F") is expected

    def test_date_cleared(self):
        engine = engine_for(single({"attribute": "endDate", "new_values": "DATE CLEARED",
                                    "date_operation": "GREATEREQUAL"}))
        previous = make_identity(endDate="2024-09-30")
        current = make_identity(endDate=None)
        assert engine.allowed(current, previous, "testProcess", "F")

    def test_default_formats(self):
        engine = engine_for(single({"attribute": "endDate", "new_values": "DATE",
                                    "date_operation": "GREATEREQUAL"}))
        assert engine.allowed(make_identity(endDate="12/31/2024"), make_identity(endDate=None), "testProcess", "F")

    def test_injected_clock(self, config_store, population_matcher):
        engine = TriggerMatchEngine(config_store, population_matcher, today=lambda: date(2030, 1, 1))
        predicate = TriggerPredicate(attribute="endDate", new_values="DATE", date_operation="LESSEQUAL")
        definition = TriggerDefinition(process_key="p", predicates=[predicate])
        assert engine.evaluate_definition(definition, make_identity(endDate="2029-12-31"),
                                          make_identity(endDate=None))


class TestPersonaPredicates:
    """Test cases for persona relationship trigger definitions."""

    def test_relationship_add(self, trigger_engine):
        definition = TriggerDefinition(
            process_key="p",
            kind=TriggerKind.PERSONA_RELATIONSHIP,
            predicates=[TriggerPredicate(attribute="Contractor", new_values="ADD")],
        )
        previous = make_identity(relationships=["Employee"])
        current = make_identity(relationships=["Employee", "Contractor"])
        assert trigger_engine.evaluate_definition(definition, current, previous)

    def test_any_relationship_drop(self, trigger_engine):
        definition = TriggerDefinition(
            process_key="p",
            kind=TriggerKind.PERSONA_RELATIONSHIP,
            operation=CombinationMode.OR,
            predicates=[TriggerPredicate(attribute="*", new_values="DROP")],
        )
        previous = make_identity(relationships=["Employee"])
        current = make_identity(relationships=[])
        assert trigger_engine.evaluate_definition(definition, current, previous)

    def test_definition_without_predicates_never_matches(self, trigger_engine):
        definition = TriggerDefinition(process_key="p")
        assert not trigger_engine.evaluate_definition(definition, make_identity(), make_identity())


class TestTriggerSourceMock:
    """The engine only talks to its TriggerSource through the interface."""

    def test_uses_trigger_source(self, population_matcher):
        source = Mock()
        source.is_feature_disabled.return_value = False
        source.relationship_drops_to_ignore.return_value = []
        source.load_trigger_definitions.return_value = [
            TriggerDefinition(process_key="moverProcess", predicates=[
                TriggerPredicate(attribute="title", old_values="*", new_values="*"),
            ]),
        ]
        engine = TriggerMatchEngine(source, population_matcher)
        assert engine.allowed(make_identity(title="Lead"), make_identity(title="Eng"), "moverProcess", "MOVER FEATURE")
        source.load_trigger_definitions.assert_called_once_with("moverProcess")
