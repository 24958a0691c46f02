"""Request parameter classification.

Splits the merged path/body/query parameters into reserved (system)
parameters and domain parameters. HTTP transports only deliver
``key=value`` pairs, so comparison operators travel inside the key
itself: ``?price>100`` arrives as key ``price>100`` with an empty value,
``?age>=21`` as key ``age>`` with value ``21``.
"""

import logging
import re
from typing import Any, Iterable, List, Mapping, Tuple

from gateway.pipeline.context import ParsedParameter
from gateway.pipeline.reserved import ReservedParameter, ReservedParameterRegistry

logger = logging.getLogger(__name__)

OPERATOR_PATTERN = re.compile(r"^(?P<name>.+?)(?P<op><=|>=|<|>)(?P<trailing>.*)$", re.DOTALL)


def merge_sources(sources: Iterable[Mapping[str, Any]]) -> dict:
    """Merge parameter sources; later sources win on key collisions."""
    merged: dict = {}
    for source in sources:
        if source:
            merged.update(source)
    return merged


def deconflict(reserved: ReservedParameter, supplied: List[Any]) -> Any:
    """Reduce a multi-valued reserved parameter to one value.

    Returns the first supplied value that differs from the declared
    default (compared as strings), or the default when none does.
    """
    default = reserved.default_string
    for value in supplied:
        if value != default:
            return value
    return reserved.default_value


def parse_domain_parameter(key: str, value: Any) -> ParsedParameter:
    """Classify one non-reserved key, extracting an embedded operator."""
    match = OPERATOR_PATTERN.match(key)
    if not match:
        return ParsedParameter(key=key, op="=", value=value)

    name, op, trailing = match.group("name"), match.group("op"), match.group("trailing")
    # 'age>=21' is split by the transport into key 'age>' and value '21'
    if trailing == "" and op in ("<", ">") and value not in (None, "", []):
        return ParsedParameter(key=name, op=op + "=", value=value)
    return ParsedParameter(key=name, op=op, value=trailing)


class ParameterClassifier:
    """Separates reserved parameters from domain parameters."""

    def __init__(self, reserved: ReservedParameterRegistry):
        self.reserved = reserved

    def classify(
        self, sources: Iterable[Mapping[str, Any]]
    ) -> Tuple[List[ParsedParameter], List[ParsedParameter]]:
        """Classify raw request parameters.

        Args:
            sources: Parameter mappings in precedence order (path, body, query).
                     Multi-valued parameters are given as lists.

        Returns:
            (reserved, domain) lists in merged-map insertion order
        """
        reserved_list: List[ParsedParameter] = []
        domain_list: List[ParsedParameter] = []

        for key, value in merge_sources(sources).items():
            definition = self.reserved.get(key)
            if definition is not None:
                if isinstance(value, list):
                    value = deconflict(definition, value)
                reserved_list.append(ParsedParameter(key=key, op="=", value=definition.coerce(value)))
            else:
                domain_list.append(parse_domain_parameter(key, value))

        logger.debug(
            f"Parsed {len(reserved_list)} reserved parameter(s) and {len(domain_list)} parameter(s)"
        )
        return reserved_list, domain_list
