#!/usr/bin/env python3
"""
schema_loader.py - Build schema descriptions from YAML layout files

Layout format:

    name: mps7
    fields:
      - name: magicString
        type: text
        length: 4
      - name: recordCount
        type: u32
      - name: records
        repeat:
          until: recordCount      # optional; omit to read to end of buffer
          fields:
            - name: recordType
              type: u8
            - name: dollarAmount
              type: f64
              when:
                field: recordType
                in: [0, 1]        # or `equals: 0`

Types are either a registry type with an explicit `length` (text, uint,
double) or one of the sized aliases below.

Usage:
    from scalar_readers import build_registry
    from schema_loader import load_schema

    description = load_schema('schemas/mps7.yaml', build_registry())
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml

from scalar_readers import ReaderRegistry, field_in, when
from schema_compiler import array_of
from schema_errors import DecodeError, SchemaError, SourceUnavailable

logger = logging.getLogger(__name__)


# alias -> (registry type, width)
TYPE_ALIASES = {
    'u8': ('uint', 1), 'uint8': ('uint', 1),
    'u32': ('uint', 4), 'uint32': ('uint', 4),
    'u64': ('uint', 8), 'uint64': ('uint', 8),
    'f64': ('double', 8), 'float64': ('double', 8),
}


def _resolve_reader(field_def: Dict[str, Any], registry: ReaderRegistry):
    field_type = field_def.get('type')
    if field_type is None:
        raise SchemaError("Field has no type")
    if not isinstance(field_type, str):
        raise SchemaError(f"Field type must be a string, got {field_type!r}")
    length = field_def.get('length')
    if 'length' in field_def and (isinstance(length, bool) or not isinstance(length, int)):
        raise SchemaError(f"Length must be an integer, got {length!r}")
    if field_type in TYPE_ALIASES:
        type_name, width = TYPE_ALIASES[field_type]
        if length is not None and length != width:
            raise SchemaError(f"Length {length} conflicts with type {field_type}")
    else:
        type_name = 'text' if field_type in ('ascii', 'string') else field_type
        if length is None:
            raise SchemaError(f"Type '{field_type}' requires a length")
        width = length
    return registry.reader(type_name, width)


def _resolve_condition(cond: Any):
    if not isinstance(cond, dict) or 'field' not in cond:
        raise SchemaError(f"Invalid when: clause: {cond!r}")
    # YAML allows `$var` style references like the rest of the schemas
    name = str(cond['field']).lstrip('$')
    if 'in' in cond:
        values = cond['in']
        if not isinstance(values, list):
            values = [values]
    elif 'equals' in cond:
        values = [cond['equals']]
    else:
        raise SchemaError(f"when: clause for '{name}' needs 'in' or 'equals'")
    for value in values:
        try:
            hash(value)
        except TypeError:
            raise SchemaError(f"when: clause for '{name}' has unusable value {value!r}") from None
    return field_in(name, values)


def _fields_to_description(fields: List[Dict[str, Any]],
                           registry: ReaderRegistry) -> Dict[str, Any]:
    if not isinstance(fields, list) or not fields:
        raise SchemaError("Schema must define a non-empty 'fields' list")

    description: Dict[str, Any] = {}
    for field_def in fields:
        if (not isinstance(field_def, dict) or not field_def.get('name')
                or not isinstance(field_def['name'], str)):
            raise SchemaError(f"Invalid field definition: {field_def!r}")
        name = field_def['name']
        if name in description:
            raise SchemaError("Duplicate field name", field=name)
        try:
            if 'repeat' in field_def:
                repeat = field_def['repeat']
                if not isinstance(repeat, dict):
                    raise SchemaError("repeat: must be a mapping")
                inner = _fields_to_description(repeat.get('fields'), registry)
                description[name] = array_of(inner, repeat.get('until'))
            else:
                reader = _resolve_reader(field_def, registry)
                if 'when' in field_def:
                    reader = when(_resolve_condition(field_def['when']), reader)
                description[name] = reader
        except DecodeError as e:
            raise e.within(name) from e
    return description


def schema_from_dict(schema: Dict[str, Any], registry: ReaderRegistry) -> Dict[str, Any]:
    """Convert a parsed YAML layout into a schema description."""
    if not isinstance(schema, dict):
        raise SchemaError(f"Schema must be a mapping, got {type(schema).__name__}")
    description = _fields_to_description(schema.get('fields'), registry)
    logger.debug("Loaded schema '%s' with %d top-level field(s)",
                 schema.get('name', 'unknown'), len(description))
    return description


def load_schema(path: Union[str, Path], registry: ReaderRegistry) -> Dict[str, Any]:
    """Load a YAML layout file and convert it into a schema description."""
    try:
        with open(path) as f:
            schema = yaml.safe_load(f)
    except OSError as e:
        raise SourceUnavailable(str(path), e.strerror or str(e)) from e
    except yaml.YAMLError as e:
        raise SchemaError(f"Invalid YAML in {path}: {e}") from e
    return schema_from_dict(schema, registry)
