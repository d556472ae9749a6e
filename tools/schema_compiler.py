#!/usr/bin/env python3
"""
schema_compiler.py - Compile schema descriptions into operation lists

A schema description is an ordered mapping of field name to one of:

    ScalarReader        fixed-width, context-free read
    ConditionalReader   read that depends on earlier sibling fields
    RepeatedSubSchema   nested schema applied repeatedly (see array_of)
    Mapping             nested schema repeated until the end of the buffer

compile_schema() resolves the shape of every field once and returns an
immutable tuple of Operation objects. Operations never touch a buffer and
can be executed any number of times against different buffers.

Usage:
    from schema_compiler import compile_schema, array_of

    record = {'kind': uint[1], 'value': uint[4]}
    ops = compile_schema({
        'count': uint[4],
        'items': array_of(record, until='count'),
    })
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Set, Tuple, Union

from scalar_readers import ConditionalReader, ReaderKind, ScalarReader
from schema_errors import DecodeError, SchemaError

logger = logging.getLogger(__name__)


class OpKind(Enum):
    SCALAR = 'scalar'
    CONDITIONAL = 'conditional'
    REPEATED = 'repeated'


@dataclass(frozen=True)
class RepeatedSubSchema:
    """A nested schema to apply repeatedly.

    With `until`, the element count is the value of that field, which must be
    decoded earlier in the enclosing schema. Without it, elements are read
    until the cursor reaches the end of the buffer.
    """
    schema: Mapping[str, Any]
    until: Optional[str] = None


def array_of(schema: Mapping[str, Any], until: Optional[str] = None) -> RepeatedSubSchema:
    return RepeatedSubSchema(schema, until)


@dataclass(frozen=True)
class RepeatPlan:
    operations: Tuple['Operation', ...]
    until: Optional[str] = None


@dataclass(frozen=True)
class Operation:
    """Compiled form of one schema field."""
    key: str
    kind: OpKind
    payload: Union[ScalarReader, ConditionalReader, RepeatPlan]


_READER_OPS = {
    ReaderKind.STANDARD: OpKind.SCALAR,
    ReaderKind.CONDITIONAL: OpKind.CONDITIONAL,
}


def _compile_repeated(key: str, sub: RepeatedSubSchema, seen: Set[str]) -> Operation:
    until = sub.until
    if until is not None:
        if not isinstance(until, str) or not until:
            raise SchemaError(f"Termination field must be a field name, got {until!r}",
                              field=key)
        if until not in seen:
            raise SchemaError(
                f"Termination field '{until}' must be declared before the repeated field",
                field=key,
            )
    try:
        inner = compile_schema(sub.schema)
    except DecodeError as e:
        raise e.within(key) from e
    if not inner:
        raise SchemaError("Repeated schema has no fields", field=key)
    return Operation(key, OpKind.REPEATED, RepeatPlan(inner, until))


def _compile_field(key: str, value: Any, seen: Set[str]) -> Operation:
    if isinstance(value, (ScalarReader, ConditionalReader)):
        return Operation(key, _READER_OPS[value.kind], value)
    if isinstance(value, RepeatedSubSchema):
        return _compile_repeated(key, value, seen)
    if isinstance(value, Mapping):
        return _compile_repeated(key, RepeatedSubSchema(value), seen)
    if callable(value):
        # Bare function: treat as (buf, offset, record) -> (value, next_offset)
        return Operation(key, OpKind.CONDITIONAL, ConditionalReader(value))
    raise SchemaError(f"Unsupported field definition: {type(value).__name__}", field=key)


def compile_schema(description: Mapping[str, Any]) -> Tuple[Operation, ...]:
    """Compile a schema description into a tuple of Operations, in field order."""
    if not isinstance(description, Mapping):
        raise SchemaError(f"Schema must be a mapping, got {type(description).__name__}")

    operations = []
    seen: Set[str] = set()
    for key, value in description.items():
        if not isinstance(key, str) or not key:
            raise SchemaError(f"Field names must be non-empty strings, got {key!r}")
        operations.append(_compile_field(key, value, seen))
        seen.add(key)

    logger.debug("Compiled schema: %s",
                 ', '.join(f"{op.key}:{op.kind.value}" for op in operations))
    return tuple(operations)
