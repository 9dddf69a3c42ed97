"""
Configuration Store for the Lifecycle Planner.

This module reads the lifecycle configuration file (trigger definitions,
populations, role catalog and per-application birthright rules) and serves
it to the engine through the collaborator interfaces. The parsed file is
held in a ConfigCache and re-read when the file's modification time moves
past the cached copy.
"""

import logging
import string
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from ..exceptions import ConfigurationMissing
from ..models import (
    BirthrightRule,
    IdentitySnapshot,
    LifecycleConfig,
    PopulationDefinition,
    RoleDefinition,
    TriggerDefinition,
)
from .config_cache import ConfigCache
from .interfaces import BirthrightSource, NamingPolicy, PopulationSource, TriggerSource

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "lifecycle.yaml"


class LifecycleConfigStore(TriggerSource, PopulationSource, BirthrightSource, NamingPolicy):
    """
    YAML backed source of lifecycle configuration.

    Reads lifecycle.yaml and exposes triggers, populations, roles,
    birthright rules and template based naming of new accounts.
    """

    def __init__(
        self,
        config_path: Optional[Union[str, Path]] = None,
        cache: Optional[ConfigCache] = None,
    ):
        """
        Initialize the configuration store.

        Args:
            config_path: Path to lifecycle.yaml. Defaults to the sample
                         configuration shipped next to this module
            cache: Shared configuration cache, a private one if omitted
        """
        if config_path is None:
            config_path = Path(__file__).parent / DEFAULT_CONFIG_FILE
        self.config_path = Path(config_path)
        self.cache = cache or ConfigCache()
        self._static: Optional[LifecycleConfig] = None

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "LifecycleConfigStore":
        """Build a store from an already loaded mapping, without a file."""
        store = cls(config_path=Path(DEFAULT_CONFIG_FILE))
        store._static = LifecycleConfig.model_validate(data or {})
        return store

    @property
    def cache_key(self) -> str:
        return str(self.config_path)

    @property
    def config(self) -> LifecycleConfig:
        """The current configuration, reloaded if the file changed."""
        if self._static is not None:
            return self._static

        try:
            last_modified = self.config_path.stat().st_mtime
        except FileNotFoundError:
            last_modified = 0.0
        return self.cache.get(self.cache_key, last_modified, self._load_configuration)

    def _load_configuration(self) -> LifecycleConfig:
        """Load and validate the configuration file."""
        if not self.config_path.exists():
            logger.warning(f"Lifecycle configuration file not found: {self.config_path}")
            return LifecycleConfig()

        try:
            with open(self.config_path, encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
            config = LifecycleConfig.model_validate(data)
            logger.info(
                f"Loaded lifecycle configuration from {self.config_path}: "
                f"{len(config.triggers)} processes, {len(config.applications)} applications"
            )
            return config
        except Exception as e:
            logger.error(f"Failed to load lifecycle configuration: {e}")
            raise

    def reload_config(self):
        """Force a reload of the configuration file."""
        logger.info("Reloading lifecycle configuration")
        self.cache.invalidate(self.cache_key)
        return self.config

    # TriggerSource

    def load_trigger_definitions(self, process_key: str) -> List[TriggerDefinition]:
        return list(self.config.triggers.get(process_key, []))

    def is_feature_disabled(self, feature_name: str) -> bool:
        disabled = {name.upper() for name in self.config.settings.disabled_features}
        return feature_name.upper() in disabled

    def persona_enabled(self) -> bool:
        return self.config.settings.persona_enabled

    def relationship_drops_to_ignore(self) -> List[str]:
        return list(self.config.settings.relationship_drops_to_ignore)

    # PopulationSource

    def get_population(self, name: str) -> Optional[PopulationDefinition]:
        return self.config.populations.get(name)

    # BirthrightSource

    def load_birthright_rule(self, application: str) -> Optional[BirthrightRule]:
        rule = self.config.applications.get(application)
        if rule is None:
            logger.debug(f"No birthright rule configured for {application}")
        return rule

    def require_birthright_rule(self, application: str) -> BirthrightRule:
        """
        Get a birthright rule that must exist.

        Raises:
            ConfigurationMissing: If the application has no rule
        """
        rule = self.config.applications.get(application)
        if rule is None:
            raise ConfigurationMissing("birthright rule", application)
        return rule

    def birthright_applications(self) -> List[str]:
        return [name for name, rule in self.config.applications.items() if rule.enabled]

    def get_role(self, role_name: str) -> Optional[RoleDefinition]:
        return self.config.roles.get(role_name)

    def filter_detected_roles_default(self) -> bool:
        return self.config.settings.filter_detected_roles

    # NamingPolicy

    def resolve_native_identity(self, application: str, identity: IdentitySnapshot) -> Optional[str]:
        """
        Fill the application's native identity template from the identity.

        Args:
            application: Application the account will be created on
            identity: Identity the account belongs to

        Returns:
            Native identity, or None if there is no template or a placeholder
            has no value on the identity
        """
        rule = self.config.applications.get(application)
        if rule is None or not rule.native_identity_template:
            return None

        values = {}
        for _, field, _, _ in string.Formatter().parse(rule.native_identity_template):
            if field is None:
                continue
            value = identity.get(field)
            if value is None or value == "":
                logger.debug(f"Cannot name {identity.name} on {application}: '{field}' is empty")
                return None
            values[field] = value
        return rule.native_identity_template.format(**values)

    def get_summary(self) -> Dict[str, Any]:
        """Counts of what is configured, for display."""
        config = self.config
        return {
            "config_path": str(self.config_path),
            "persona_enabled": config.settings.persona_enabled,
            "disabled_features": list(config.settings.disabled_features),
            "processes": {key: len(defs) for key, defs in config.triggers.items()},
            "populations": sorted(config.populations),
            "roles": sorted(config.roles),
            "applications": sorted(config.applications),
        }
