"""Debezium change event envelope parsing."""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from cdc_router.common.exceptions import ParseError


class Operation(str, Enum):
    """Change operation carried by an envelope."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    READ = "read"  # initial snapshot
    UNKNOWN = "unknown"


_OPERATION_MAP = {
    "c": Operation.CREATE,
    "u": Operation.UPDATE,
    "d": Operation.DELETE,
    "r": Operation.READ,
}


@dataclass(frozen=True)
class ChangeEvent:
    """A consumed change event together with its original record bytes."""

    operation: Operation
    database: str
    table: str
    key: Optional[bytes]
    value: bytes
    source_topic: str
    partition: Optional[int] = None
    offset: Optional[int] = None


def parse_operation(op_code: str) -> Operation:
    """
    Map a Debezium operation code to an Operation.

    Args:
        op_code: Debezium operation code (c/u/d/r)

    Returns:
        Matching operation, UNKNOWN for anything else
    """
    return _OPERATION_MAP.get(op_code, Operation.UNKNOWN)


def parse_envelope(
    raw: Optional[bytes],
    source_topic: str,
    key: Optional[bytes] = None,
    partition: Optional[int] = None,
    offset: Optional[int] = None,
) -> ChangeEvent:
    """
    Decode a raw Debezium JSON payload.

    Both the flat envelope and the schema-wrapped form
    (``{"schema": ..., "payload": {...}}``) are accepted.

    Args:
        raw: Record value bytes
        source_topic: Topic the record was consumed from
        key: Record key bytes, carried through unchanged
        partition: Source partition
        offset: Source offset

    Returns:
        Parsed change event holding the original key and value

    Raises:
        ParseError: If the payload is empty, not JSON, or lacks a string
            ``op``, ``source.db`` or ``source.table``
    """
    if not raw:
        raise ParseError("Empty payload (tombstone or null value)", reason="empty")

    try:
        document = json.loads(raw)
    except (ValueError, RecursionError) as e:
        raise ParseError(f"Payload is not valid JSON: {e}", reason="invalid_json") from e

    if not isinstance(document, dict):
        raise ParseError("Payload root is not a JSON object", reason="not_an_object")

    envelope = _unwrap(document)
    source = envelope.get("source")
    if not isinstance(source, dict):
        raise ParseError("Envelope has no 'source' object", reason="missing_field")

    op_code = _require_string(envelope, "op")
    database = _require_string(source, "db", prefix="source.")
    table = _require_string(source, "table", prefix="source.")

    return ChangeEvent(
        operation=parse_operation(op_code),
        database=database,
        table=table,
        key=key,
        value=raw,
        source_topic=source_topic,
        partition=partition,
        offset=offset,
    )


def _unwrap(document: Dict[str, Any]) -> Dict[str, Any]:
    if "op" not in document and isinstance(document.get("payload"), dict):
        return document["payload"]
    return document


def _require_string(container: Dict[str, Any], field: str, prefix: str = "") -> str:
    value = container.get(field)
    if not isinstance(value, str):
        raise ParseError(
            f"Envelope field '{prefix}{field}' is missing or not a string",
            reason="missing_field",
        )
    return value
