"""Identifier helpers shared by detectors."""

import re
from typing import Iterable, List, Mapping, Set, Tuple

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def split_words(identifier: str) -> List[str]:
    """
    Split snake_case / CamelCase / mixed identifiers into lowercase words.

    Examples:
        >>> split_words("UserDbPool")
        ['user', 'db', 'pool']
        >>> split_words("send_email_v2")
        ['send', 'email', 'v2']
    """
    words: List[str] = []
    for chunk in re.split(r"[^A-Za-z0-9]+", identifier):
        if chunk:
            words.extend(w.lower() for w in _CAMEL_BOUNDARY.split(chunk) if w)
    return words


def matching_clusters(names: Iterable[str], clusters: Mapping[str, Tuple[str, ...]]) -> Set[str]:
    """Names of the keyword clusters hit by any word of the given identifiers."""
    words: Set[str] = set()
    for name in names:
        words.update(split_words(name))
    return {cluster for cluster, keywords in clusters.items() if words.intersection(keywords)}


def leading_verb(identifier: str) -> str:
    words = split_words(identifier)
    return words[0] if words else ""
