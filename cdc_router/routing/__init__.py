"""Routing rules and change event envelopes."""

from cdc_router.routing.envelope import ChangeEvent, Operation, parse_envelope
from cdc_router.routing.table import RoutingRule, RoutingTable

__all__ = [
    "ChangeEvent",
    "Operation",
    "parse_envelope",
    "RoutingRule",
    "RoutingTable",
]
