"""
Tests for the lifecyclectl command line interface.
"""

import json

import pytest
import yaml
from click.testing import CliRunner

from lifecycle_planner.cli.lifecyclectl import cli
from lifecycle_planner.engine import LifecycleConfigStore
from lifecycle_planner.models import LifecycleCategory
from lifecycle_planner.planning import LeaverPlanBuilder

from conftest import AD_DN, ad_account, build_config, make_identity


def write_json(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


def identity_data(**kwargs):
    return make_identity(**kwargs).model_dump(mode="json")


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "lifecycle.yaml"
    path.write_text(yaml.safe_dump(build_config()), encoding="utf-8")
    return str(path)


def invoke(runner, config_file, *args):
    return runner.invoke(cli, ["--config", config_file, *args], obj={})


def output_json(result):
    """The JSON plan printed by --json, ignoring any other output."""
    text = result.output
    return json.loads(text[text.index("{"):text.rindex("}") + 1])


class TestClassifyCommand:
    """Test cases for the classify command."""

    def test_previous_and_current_files(self, runner, config_file, tmp_path):
        previous = write_json(tmp_path / "previous.json", identity_data(status="Active"))
        current = write_json(tmp_path / "current.json", identity_data(status="Terminated"))

        result = invoke(runner, config_file, "classify", previous, current)

        assert result.exit_code == 0
        assert "LEAVER" in result.output

    def test_transition_file_with_plan(self, runner, config_file, tmp_path):
        transition = write_json(tmp_path / "transition.json", {
            "previous": identity_data(status="Pre-Hire"),
            "current": identity_data(status="Active"),
        })

        result = invoke(runner, config_file, "classify", transition, "--plan", "--json")

        assert result.exit_code == 0
        assert "JOINER FEATURE" in result.output
        assert "BasicAccess" in result.output

    def test_no_event(self, runner, config_file, tmp_path):
        transition = write_json(tmp_path / "transition.json", {
            "previous": identity_data(),
            "current": identity_data(),
        })
        result = invoke(runner, config_file, "classify", transition)
        assert result.exit_code == 0
        assert "No lifecycle event" in result.output

    def test_invalid_document(self, runner, config_file, tmp_path):
        transition = write_json(tmp_path / "transition.json", {"previous": identity_data()})
        result = invoke(runner, config_file, "classify", transition)
        assert result.exit_code == 1


class TestPlanCommand:
    """Test cases for the plan command."""

    def test_joiner_plan(self, runner, config_file, tmp_path):
        identity = write_json(tmp_path / "identity.json", identity_data())
        result = invoke(runner, config_file, "plan", "joiner", identity, "--json")

        assert result.exit_code == 0
        assert "JOINER FEATURE" in result.output

    def test_nothing_to_provision(self, runner, config_file, tmp_path):
        identity = write_json(tmp_path / "identity.json", identity_data(type="Visitor", department="Sales"))
        result = invoke(runner, config_file, "plan", "JOINER", identity)

        assert result.exit_code == 0
        assert "Nothing to provision" in result.output

    def test_unknown_application(self, runner, config_file, tmp_path):
        identity = write_json(tmp_path / "identity.json", identity_data())
        result = invoke(runner, config_file, "plan", "JOINER", identity, "-a", "Salesforce")

        assert result.exit_code == 2
        assert "Salesforce" in result.output


class TestRestoreCommand:
    """Test cases for the restore command."""

    def test_restoration_plan(self, runner, config_file, tmp_path):
        store = LifecycleConfigStore.from_mapping(build_config())
        leaver = make_identity(roles=["BasicAccess"], accounts=[ad_account()])
        historical = LeaverPlanBuilder(store).build(LifecycleCategory.LEAVER, leaver)
        plan_file = write_json(tmp_path / "plan.json", historical.model_dump(mode="json"))

        result = invoke(runner, config_file, "restore", plan_file, "-a", "Active Directory", "--json")

        assert result.exit_code == 0
        restored = output_json(result)
        assert restored["arguments"]["request_type"] == "REVERSE LEAVER FEATURE"
        assert restored["account_requests"][0]["native_identity"] == AD_DN


class TestNativeChangeCommand:
    """Test cases for the native-change command."""

    def test_privileged_group_is_reverted(self, runner, config_file, tmp_path):
        change = write_json(tmp_path / "change.json", {
            "identity": "jdoe",
            "application": "Active Directory",
            "native_identity": AD_DN,
            "old": {"memberOf": []},
            "new": {"memberOf": ["CN=Domain Admins,OU=Groups,DC=example,DC=com"]},
        })

        result = invoke(runner, config_file, "native-change", change, "--privileged-only", "--json")

        assert result.exit_code == 0
        recovery = output_json(result)
        assert recovery["arguments"]["request_type"] == "NATIVE CHANGE DETECTION FEATURE"
        assert recovery["account_requests"][0]["attribute_requests"][0]["operation"] == "Remove"

    def test_no_change(self, runner, config_file, tmp_path):
        change = write_json(tmp_path / "change.json", {
            "identity": "jdoe",
            "application": "GitHub",
            "native_identity": "jdoe@example.com",
            "old": {},
            "new": {"teams": ["platform"]},
        })
        result = invoke(runner, config_file, "native-change", change)
        assert result.exit_code == 0
        assert "No native change detected" in result.output


class TestShowConfigCommand:
    """Test cases for the show-config command."""

    def test_show_config(self, runner, config_file):
        result = invoke(runner, config_file, "show-config")
        assert result.exit_code == 0
        assert "moverProcess" in result.output
        assert "Active Directory" in result.output
