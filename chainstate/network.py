"""
Endpoint lists with tags.

A list is plain text, one endpoint per line. A line starting with "#" holds a
comma-separated tag set for the next endpoint only:

    #mainnet, archive
    https://rpc1.example.com
    https://rpc2.example.com

Here rpc1 is tagged {"mainnet", "archive"} and rpc2 has no tags.
"""

import logging
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Has:
    tag: str

    def test(self, tags: FrozenSet[str]) -> bool:
        return self.tag in tags


@dataclass(frozen=True)
class Lacks:
    tag: str

    def test(self, tags: FrozenSet[str]) -> bool:
        return self.tag not in tags


def parse_predicate(token: str):
    """"-foo" means the tag must be absent, anything else must be present."""
    if len(token) == 0:
        return None
    if len(token) > 1 and token.startswith("-"):
        return Lacks(token[1:])
    return Has(token)


def tags_from_args(tags_str: str) -> FrozenSet[str]:
    """Split a comma-separated query string, dropping blank tokens."""
    parts = (part.strip() for part in (tags_str or "").split(","))
    return frozenset(part for part in parts if part)


@dataclass(frozen=True)
class Network:
    endpoint: str
    tags: FrozenSet[str] = frozenset()

    def matches(self, query: Iterable[str]) -> bool:
        """True when every token in query is satisfied. Empty query matches."""
        for token in query:
            predicate = parse_predicate(token)
            if predicate is not None and not predicate.test(self.tags):
                return False
        return True


def parse_networks(lines: Iterable[str]) -> List[Network]:
    networks = []
    pending: FrozenSet[str] = frozenset()
    for line in lines:
        row = line.strip()
        if not row:
            continue
        if row.startswith("#"):
            if pending:
                logger.debug(f"Tags {sorted(pending)} replaced before use")
            pending = frozenset(tag.strip() for tag in row[1:].split(","))
            continue
        networks.append(Network(row, pending))
        pending = frozenset()
    return networks


def filter_networks(
    networks: Iterable[Network], query: Optional[Iterable[str]] = None
) -> List[Network]:
    query = list(query or [])
    return [network for network in networks if network.matches(query)]
