"""
Snapshot Loader for the Lifecycle Planner.

This module reads identity snapshots, transitions and historical provisioning
plans from JSON or YAML documents, as exported by the surrounding identity
platform, and validates them into the planner's models.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml
from pydantic import ValidationError

from ..models import IdentitySnapshot, ProvisioningPlan

logger = logging.getLogger(__name__)

Source = Union[str, Path, Dict[str, Any]]

# Keys a transition document may use for its two snapshots
PREVIOUS_KEYS = ("previous", "old", "before")
CURRENT_KEYS = ("current", "new", "after")


class SnapshotLoader:
    """
    Loads planner input documents.

    Sources may be a path to a .json/.yaml/.yml file, a JSON or YAML string,
    or an already parsed mapping.
    """

    def load_document(self, source: Source) -> Dict[str, Any]:
        """
        Read a source into a mapping.

        Args:
            source: File path, document text or mapping

        Returns:
            Parsed mapping

        Raises:
            FileNotFoundError: If a path does not exist
            ValueError: If the content is not a JSON or YAML mapping
        """
        if isinstance(source, dict):
            return source

        if isinstance(source, Path) or (isinstance(source, str) and self._looks_like_path(source)):
            path = Path(source)
            if not path.exists():
                raise FileNotFoundError(f"Input file not found: {path}")
            with open(path, encoding="utf-8") as f:
                content = f.read()
            logger.info(f"Loading planner input from {path}")
            if path.suffix.lower() == ".json":
                return self._ensure_mapping(json.loads(content), path)
            if path.suffix.lower() in (".yaml", ".yml"):
                return self._ensure_mapping(yaml.safe_load(content), path)
            raise ValueError(f"Unsupported file type: {path.suffix}")

        if isinstance(source, str):
            try:
                return self._ensure_mapping(json.loads(source), "JSON text")
            except json.JSONDecodeError:
                return self._ensure_mapping(yaml.safe_load(source), "YAML text")

        raise ValueError(f"Unsupported data type: {type(source)}")

    def load_identity(self, source: Source) -> IdentitySnapshot:
        """Load one identity snapshot."""
        return self._validate(IdentitySnapshot, self.load_document(source))

    def load_transition(self, source: Source) -> Tuple[Optional[IdentitySnapshot], IdentitySnapshot]:
        """
        Load a previous/current snapshot pair.

        The previous snapshot may be missing or null for a brand new identity.

        Raises:
            ValueError: If the document has no current snapshot
        """
        document = self.load_document(source)
        previous_data = self._first(document, PREVIOUS_KEYS)
        current_data = self._first(document, CURRENT_KEYS)
        if current_data is None:
            raise ValueError("Transition document has no current snapshot")

        previous = self._validate(IdentitySnapshot, previous_data) if previous_data is not None else None
        current = self._validate(IdentitySnapshot, current_data)
        return previous, current

    def load_plan(self, source: Source) -> ProvisioningPlan:
        """Load a historical provisioning plan."""
        return self._validate(ProvisioningPlan, self.load_document(source))

    @staticmethod
    def _looks_like_path(text: str) -> bool:
        stripped = text.strip()
        if not stripped or "\n" in stripped or stripped[0] in "{[":
            return False
        return Path(stripped).suffix.lower() in (".json", ".yaml", ".yml")

    @staticmethod
    def _ensure_mapping(data: Any, origin: Any) -> Dict[str, Any]:
        if not isinstance(data, dict):
            raise ValueError(f"Expected a mapping in {origin}, got {type(data).__name__}")
        return data

    @staticmethod
    def _first(document: Dict[str, Any], keys: Tuple[str, ...]) -> Any:
        for key in keys:
            if key in document:
                return document[key]
        return None

    @staticmethod
    def _validate(model, data: Dict[str, Any]):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.error(f"Invalid {model.__name__} document: {e}")
            raise ValueError(f"Invalid {model.__name__} document: {e}") from e
