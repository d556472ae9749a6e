#!/usr/bin/env python3
"""
schema_executor.py - Execute compiled operations against a byte buffer

execute() folds the operation list over an immutable (data, offset) state:

    scalar       read at the current offset, store, advance
    conditional  read with a read-only view of the partial record; advance
                 only by the bytes actually consumed (0 when absent)
    repeated     run the inner operations N times, where N is either the
                 value of an earlier field or "until the end of the buffer"

Any failure aborts the whole parse and is raised with the dotted path of the
field that failed, e.g. ``records[2].userId``.

Usage:
    from schema_compiler import compile_schema
    from schema_executor import execute

    ops = compile_schema(schema)
    result = execute(payload, ops)
    result.data, result.offset
"""

import logging
from dataclasses import dataclass
from functools import reduce
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from schema_compiler import OpKind, Operation, RepeatPlan, compile_schema
from schema_errors import DecodeError, OutOfBounds, SchemaError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParseResult:
    """Decoded fields (in schema order) and the offset after the last byte read."""
    data: Dict[str, Any]
    offset: int


def _read_scalar(buf: bytes, op: Operation, data: Mapping[str, Any],
                 offset: int) -> Tuple[Any, int]:
    return op.payload(buf, offset)


def _read_conditional(buf: bytes, op: Operation, data: Mapping[str, Any],
                      offset: int) -> Tuple[Any, int]:
    value, next_offset = op.payload(buf, offset, MappingProxyType(data))
    if not isinstance(next_offset, int) or next_offset < offset:
        raise SchemaError(f"Conditional reader returned invalid offset {next_offset!r}",
                          offset=offset)
    if next_offset > len(buf):
        raise OutOfBounds(offset, next_offset - offset, len(buf))
    return value, next_offset


def _repeat_bound(key: str, until: str, data: Mapping[str, Any], offset: int) -> int:
    if until not in data:
        raise SchemaError(f"Termination field '{until}' has not been decoded",
                          field=key, offset=offset)
    bound = data[until]
    if isinstance(bound, bool) or not isinstance(bound, int) or bound < 0:
        raise SchemaError(
            f"Termination field '{until}' is not an unsigned integer: {bound!r}",
            field=key, offset=offset,
        )
    return bound


def _read_element(buf: bytes, plan: RepeatPlan, offset: int, path: str) -> ParseResult:
    try:
        return execute(buf, plan.operations, offset)
    except DecodeError as e:
        raise e.within(path) from e


def _read_repeated(buf: bytes, op: Operation, data: Mapping[str, Any],
                   offset: int) -> Tuple[List[Dict[str, Any]], int]:
    plan = op.payload
    start = offset
    elements: List[Dict[str, Any]] = []

    if plan.until is not None:
        bound = _repeat_bound(op.key, plan.until, data, offset)
        while len(elements) < bound:
            element = _read_element(buf, plan, offset, f"{op.key}[{len(elements)}]")
            elements.append(element.data)
            offset = element.offset
    else:
        while offset < len(buf):
            path = f"{op.key}[{len(elements)}]"
            element = _read_element(buf, plan, offset, path)
            if element.offset <= offset:
                raise SchemaError("Repeated element consumed no bytes",
                                  field=path, offset=offset)
            elements.append(element.data)
            offset = element.offset

    logger.debug("%s: %d element(s), offset %d -> %d",
                 op.key, len(elements), start, offset)
    return elements, offset


_READERS = {
    OpKind.SCALAR: _read_scalar,
    OpKind.CONDITIONAL: _read_conditional,
    OpKind.REPEATED: _read_repeated,
}


def step(buf: bytes, state: ParseResult, op: Operation) -> ParseResult:
    """Apply one operation to `state`, returning the next state."""
    try:
        value, offset = _READERS[op.kind](buf, op, state.data, state.offset)
    except DecodeError as e:
        # Repeated operations already report their own path
        if op.kind is OpKind.REPEATED:
            raise
        raise e.within(op.key) from e
    return ParseResult({**state.data, op.key: value}, offset)


def execute(buf: bytes, operations: Sequence[Operation], offset: int = 0) -> ParseResult:
    """Run `operations` against `buf` starting at `offset`."""
    return reduce(lambda state, op: step(buf, state, op),
                  operations, ParseResult({}, offset))


def parse(buf: bytes, description: Mapping[str, Any]) -> Dict[str, Any]:
    """Compile `description` and decode `buf` from offset 0, returning the data."""
    return execute(buf, compile_schema(description)).data
