from decimal import Decimal
from typing import Any, List, Mapping, NamedTuple, Optional, Sequence, Tuple, Union

from .queue import Message


class Filter(NamedTuple):
    """Select messages whose attribute ``attribute`` equals ``value``"""

    attribute: str
    value: str


def split_and_check(
    s: str, separator: str, n: Union[int, Tuple[int, ...]]
) -> Tuple[str, ...]:
    """Turn string into tuple, checking that there are exactly as many parts as expected.
    :param s: String to parse
    :param separator: Separator character
    :param n: Expected number of parts, can be a single integer value or several,
              example `(2, 3)` accepts 2 or 3 parts.
    """
    if isinstance(n, int):
        n = (n,)

    parts = s.split(separator)
    if len(parts) not in n:
        raise ValueError('Failed to parse "{}"'.format(s))
    return tuple(parts)


def parse_filter(s: str) -> Filter:
    """Parse ``attribute=value`` into a Filter"""
    try:
        attribute, value = split_and_check(s, "=", 2)
    except ValueError:
        raise ValueError(
            'Filter must follow the pattern attribute=value, got "{}"'.format(s)
        ) from None

    if not attribute or not value:
        raise ValueError(
            'Filter must follow the pattern attribute=value, got "{}"'.format(s)
        )

    return Filter(attribute, value)


def attribute_value(raw: Any) -> Optional[str]:
    """String form of a message attribute value.

    Accepts SQS message attribute documents (``{"DataType": .., "StringValue": ..}``)
    as well as bare strings and numbers. Binary values and anything else
    that can't be compared as text come back as None.
    """
    if isinstance(raw, Mapping):
        raw = raw.get("StringValue")

    if isinstance(raw, bool):
        return None
    if isinstance(raw, (str, int, float, Decimal)):
        return str(raw)
    return None


def matches(flt: Filter, message: Message) -> bool:
    attributes = message.attributes
    if not isinstance(attributes, Mapping) or flt.attribute not in attributes:
        return False

    return attribute_value(attributes[flt.attribute]) == flt.value


def partition(
    flt: Optional[Filter], messages: Sequence[Message]
) -> Tuple[List[Message], List[Message]]:
    """
    Split ``messages`` into (matched, rejected), keeping the original order
    within each. Without a filter everything matches.
    """
    if flt is None:
        return list(messages), []

    matched, rejected = [], []
    for message in messages:
        if matches(flt, message):
            matched.append(message)
        else:
            rejected.append(message)
    return matched, rejected
