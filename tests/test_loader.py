"""
Tests for the SnapshotLoader.
"""

import json

import pytest
import yaml

from lifecycle_planner.ingestion import SnapshotLoader
from lifecycle_planner.models import AccountOperation, RelationshipStatus


@pytest.fixture
def loader():
    return SnapshotLoader()


IDENTITY = {
    "name": "jdoe",
    "attributes": {"type": "Employee", "status": "Active"},
    "accounts": [{"application": "GitHub", "native_identity": "jdoe@example.com"}],
    "roles": ["EngineeringTools"],
    "relationships": ["Employee", "Contractor INACTIVE"],
}


class TestSnapshotLoader:
    """Test cases for reading planner input documents."""

    def test_identity_from_mapping(self, loader):
        identity = loader.load_identity(IDENTITY)
        assert identity.name == "jdoe"
        assert identity.accounts[0].application == "GitHub"
        assert identity.relationships[1].status == RelationshipStatus.INACTIVE

    def test_identity_from_json_file(self, loader, tmp_path):
        path = tmp_path / "identity.json"
        path.write_text(json.dumps(IDENTITY), encoding="utf-8")
        assert loader.load_identity(path).roles == ["EngineeringTools"]
        assert loader.load_identity(str(path)).name == "jdoe"

    def test_identity_from_yaml_file(self, loader, tmp_path):
        path = tmp_path / "identity.yml"
        path.write_text(yaml.safe_dump(IDENTITY), encoding="utf-8")
        assert loader.load_identity(path).get("status") == "Active"

    def test_document_text(self, loader):
        assert loader.load_document(json.dumps({"a": 1})) == {"a": 1}
        assert loader.load_document("a: 1\nb: two\n") == {"a": 1, "b": "two"}

    def test_missing_file(self, loader, tmp_path):
        with pytest.raises(FileNotFoundError):
            loader.load_identity(tmp_path / "missing.json")

    def test_unsupported_file_type(self, loader, tmp_path):
        path = tmp_path / "identity.txt"
        path.write_text("name: jdoe", encoding="utf-8")
        with pytest.raises(ValueError):
            loader.load_document(path)

    def test_not_a_mapping(self, loader):
        with pytest.raises(ValueError):
            loader.load_document("[1, 2, 3]")

    def test_invalid_identity(self, loader):
        with pytest.raises(ValueError, match="IdentitySnapshot"):
            loader.load_identity({"attributes": {}})

    @pytest.mark.parametrize("previous_key, current_key", [
        ("previous", "current"),
        ("old", "new"),
        ("before", "after"),
    ])
    def test_transition_keys(self, loader, previous_key, current_key):
        previous, current = loader.load_transition({previous_key: IDENTITY, current_key: IDENTITY})
        assert previous.name == current.name == "jdoe"

    def test_transition_without_previous(self, loader):
        previous, current = loader.load_transition({"previous": None, "current": IDENTITY})
        assert previous is None
        assert current.name == "jdoe"

    def test_transition_without_current(self, loader):
        with pytest.raises(ValueError):
            loader.load_transition({"previous": IDENTITY})

    def test_plan(self, loader):
        plan = loader.load_plan({
            "identity": "jdoe",
            "arguments": {"request_type": "LEAVER FEATURE"},
            "account_requests": [{
                "application": "GitHub",
                "native_identity": "jdoe@example.com",
                "operation": "Disable",
            }],
        })
        assert plan.request_type == "LEAVER FEATURE"
        assert plan.account_requests[0].operation == AccountOperation.DISABLE
