"""Declarative routing table for CDC events."""

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from cdc_router.common.config import TransformRule
from cdc_router.common.exceptions import ConfigError
from cdc_router.observability.logging_config import get_logger

logger = get_logger(__name__)

RuleSource = Union[TransformRule, Mapping[str, Any]]


@dataclass(frozen=True)
class RoutingRule:
    """A compiled routing rule."""

    source_topic: str
    database: str
    table_pattern: "re.Pattern[str]"
    destination_topic: str

    def matches(self, source_topic: str, database: str, table: str) -> bool:
        """Exact topic and database match, table pattern found anywhere in the name."""
        return (
            self.source_topic == source_topic
            and self.database == database
            and self.table_pattern.search(table) is not None
        )


class RoutingTable:
    """
    Ordered, immutable set of routing rules.

    Rules are bucketed by ``(source_topic, database)``. Each bucket keeps
    declaration order, so the earliest declared matching rule always wins.
    """

    def __init__(self, rules: Iterable[RoutingRule]) -> None:
        self._rules: Tuple[RoutingRule, ...] = tuple(rules)
        buckets: Dict[Tuple[str, str], List[RoutingRule]] = {}
        for rule in self._rules:
            buckets.setdefault((rule.source_topic, rule.database), []).append(rule)
        self._buckets: Dict[Tuple[str, str], Tuple[RoutingRule, ...]] = {
            key: tuple(bucket) for key, bucket in buckets.items()
        }

    @classmethod
    def load(cls, rules: Iterable[RuleSource]) -> "RoutingTable":
        """
        Compile rule sources into a routing table.

        Args:
            rules: Transform rules or mappings with ``source_topic``, ``db``,
                ``table`` and ``target_topic`` keys, in priority order

        Returns:
            Compiled routing table

        Raises:
            ConfigError: If a rule is malformed or its table pattern is not a
                valid regular expression
        """
        compiled = []
        for index, source in enumerate(rules):
            try:
                rule = (
                    source
                    if isinstance(source, TransformRule)
                    else TransformRule.model_validate(source)
                )
            except ValidationError as e:
                raise ConfigError(f"Malformed routing rule #{index}: {e}") from e

            try:
                pattern = re.compile(rule.table)
            except re.error as e:
                raise ConfigError(
                    f"Routing rule #{index} has an invalid table pattern {rule.table!r}: {e}"
                ) from e

            compiled.append(
                RoutingRule(
                    source_topic=rule.source_topic,
                    database=rule.db,
                    table_pattern=pattern,
                    destination_topic=rule.target_topic,
                )
            )

        logger.info(f"Loaded {len(compiled)} routing rules")
        return cls(compiled)

    def resolve(self, source_topic: str, database: str, table: str) -> Optional[str]:
        """
        Find the destination topic for an event.

        Args:
            source_topic: Topic the event was consumed from
            database: Source database name
            table: Source table name

        Returns:
            Destination topic of the first matching rule, or None
        """
        for rule in self._buckets.get((source_topic, database), ()):
            if rule.matches(source_topic, database, table):
                return rule.destination_topic
        return None

    @property
    def source_topics(self) -> List[str]:
        """Distinct source topics referenced by the rules, in declaration order."""
        return list(dict.fromkeys(rule.source_topic for rule in self._rules))

    def warn_unbound_topics(self, bindings: Iterable[str]) -> List[str]:
        """
        Log rules whose source topic is not consumed.

        Args:
            bindings: Topics the consumer subscribes to

        Returns:
            Source topics that no binding covers
        """
        bound = set(bindings)
        unbound = [topic for topic in self.source_topics if topic not in bound]
        for topic in unbound:
            logger.warning(f"Routing rules reference topic {topic} which is not in kafka.bindings")
        return unbound

    def __iter__(self) -> Iterator[RoutingRule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)
