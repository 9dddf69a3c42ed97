"""
Population Matcher for the Lifecycle Planner.

Decides whether an identity belongs to a population expression, either a
regex over one attribute or any of a list of named populations.
"""

import logging
import re
from typing import Any, List, Optional, Union

from ..exceptions import MalformedExpression
from ..expressions import PopulationExpression, PopulationList, TokenExpression, parse_population_expression
from ..models import IdentitySnapshot, PopulationDefinition
from .interfaces import PopulationSource

logger = logging.getLogger(__name__)


def _values(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [v for v in value if v is not None]
    return [value]


class PopulationMatcher:
    """
    Evaluates population expressions against identities.

    Named populations are resolved through a PopulationSource. Unknown names
    never match.
    """

    def __init__(self, populations: PopulationSource):
        self.populations = populations

    def matches(
        self,
        identity: IdentitySnapshot,
        expression: Union[str, PopulationExpression, None],
    ) -> bool:
        """
        Check whether an identity is selected by an expression.

        Args:
            identity: Identity to evaluate
            expression: Raw expression string or a parsed expression

        Returns:
            True if selected; False for empty or malformed expressions
        """
        parsed = self._parse(expression)
        if parsed is None:
            return False

        if isinstance(parsed, TokenExpression):
            return self._matches_token(identity, parsed)

        for name in parsed.names:
            if self.in_population(identity, name):
                return True
        return False

    def matching_populations(
        self,
        identity: IdentitySnapshot,
        expression: Union[str, PopulationExpression, None],
    ) -> List[str]:
        """Names of the listed populations the identity belongs to."""
        parsed = self._parse(expression)
        if not isinstance(parsed, PopulationList):
            return []
        return [name for name in parsed.names if self.in_population(identity, name)]

    def in_population(self, identity: IdentitySnapshot, name: str) -> bool:
        """Evaluate one named population."""
        population = self.populations.get_population(name)
        if population is None:
            logger.warning(f"Population '{name}' is not defined")
            return False
        return self._satisfies(identity, population)

    def _parse(self, expression: Union[str, PopulationExpression, None]) -> Optional[PopulationExpression]:
        if expression is None or isinstance(expression, (TokenExpression, PopulationList)):
            return expression
        try:
            return parse_population_expression(expression)
        except MalformedExpression as e:
            logger.warning(f"Treating expression as non-match: {e}")
            return None

    def _matches_token(self, identity: IdentitySnapshot, expression: TokenExpression) -> bool:
        for value in _values(identity.get(expression.attribute)):
            if re.search(expression.pattern, str(value)):
                logger.debug(f"{identity.name} matched {expression}")
                return True
        return False

    def _satisfies(self, identity: IdentitySnapshot, population: PopulationDefinition) -> bool:
        if not population.criteria:
            logger.warning(f"Population '{population.name}' has no criteria and matches nobody")
            return False

        for attribute, accepted in population.criteria.items():
            wanted = {str(v).lower() for v in _values(accepted)}
            actual = {str(v).lower() for v in _values(identity.get(attribute))}
            if not wanted & actual:
                return False
        return True
