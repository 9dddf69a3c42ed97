"""
Population expressions for the Lifecycle Planner.

Birthright rules and role definitions select identities with a small string
language. Two shapes exist:

    department#IIQJoiner#^(Sales|Marketing)$   token expression
    Employees,Contractors                      list of population names

Expressions are parsed once, when configuration is loaded, into one of the
tagged variants below so evaluation never re-splits strings.
"""

import re
from typing import Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict

from .exceptions import MalformedExpression

JOINER_TOKEN = "#IIQJoiner#"


class TokenExpression(BaseModel):
    """Regex evaluated against one identity attribute."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["token"] = "token"
    attribute: str
    pattern: str

    def __str__(self) -> str:
        return f"{self.attribute}{JOINER_TOKEN}{self.pattern}"


class PopulationList(BaseModel):
    """Names of stored populations, any one of which admits the identity."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["populations"] = "populations"
    names: Tuple[str, ...]

    def __str__(self) -> str:
        return ",".join(self.names)


PopulationExpression = Union[TokenExpression, PopulationList]


def parse_population_expression(text: Optional[str]) -> Optional[PopulationExpression]:
    """
    Parse a raw expression string.

    Args:
        text: Raw expression from configuration

    Returns:
        Parsed expression, or None for an empty expression

    Raises:
        MalformedExpression: If a token expression lacks its attribute or regex
            part, or the regex does not compile
    """
    if text is None or not str(text).strip():
        return None

    text = str(text).strip()
    if JOINER_TOKEN in text:
        parts = text.split(JOINER_TOKEN)
        if len(parts) != 2:
            raise MalformedExpression(text, f"expected exactly one '{JOINER_TOKEN}' separator")
        attribute, pattern = parts[0].strip(), parts[1]
        if not attribute:
            raise MalformedExpression(text, "missing attribute name")
        if not pattern:
            raise MalformedExpression(text, "missing regular expression")
        try:
            re.compile(pattern)
        except re.error as e:
            raise MalformedExpression(text, f"invalid regular expression: {e}") from e
        return TokenExpression(attribute=attribute, pattern=pattern)

    names = tuple(name.strip() for name in text.split(",") if name.strip())
    if not names:
        return None
    return PopulationList(names=names)
