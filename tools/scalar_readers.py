#!/usr/bin/env python3
"""
scalar_readers.py - Fixed-width field readers and the reader registry

A reader extracts one typed value from a byte buffer at an offset and
returns it together with the offset of the next field:

    value, next_offset = reader(buf, offset)

All multi-byte values are big-endian (network byte order).

Supported types:
    text     fixed-length ASCII, exactly `width` characters
    uint     unsigned integer (Python int, so u64 values stay exact)
    double   IEEE 754 float (width 8; width 4 reads a single-precision float)

Conditional readers see the fields already decoded in the same record:

    value, next_offset = reader(buf, offset, record)

Usage:
    from scalar_readers import build_registry, when, field_in

    registry = build_registry()
    uint = registry.for_type('uint')
    value, pos = uint[8](payload, 5)

    amount = when(field_in('recordType', (0, 1)), registry.reader('double', 8))
"""

import struct
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Mapping, Tuple

from schema_errors import OutOfBounds, SchemaError


# Produced by a conditional reader whose condition is false
ABSENT = None


class ReaderKind(Enum):
    STANDARD = 'standard'          # depends only on buffer + offset
    CONDITIONAL = 'conditional'    # also depends on the partial record


def _extract_text(buf: bytes, pos: int, width: int) -> str:
    return bytes(buf[pos:pos + width]).decode('ascii', errors='replace')


def _extract_uint(buf: bytes, pos: int, width: int) -> int:
    return int.from_bytes(buf[pos:pos + width], 'big', signed=False)


_FLOAT_FORMATS = {4: '>f', 8: '>d'}


def _extract_double(buf: bytes, pos: int, width: int) -> float:
    return struct.unpack_from(_FLOAT_FORMATS[width], buf, pos)[0]


# type name -> (extractor, allowed widths or None for any)
_EXTRACTORS = {
    'text': (_extract_text, None),
    'uint': (_extract_uint, None),
    'double': (_extract_double, frozenset(_FLOAT_FORMATS)),
}


@dataclass(frozen=True)
class ScalarReader:
    """Context-free reader for a fixed number of bytes."""
    type_name: str
    width: int
    extract: Callable[[bytes, int, int], Any] = field(repr=False)

    kind = ReaderKind.STANDARD

    def __call__(self, buf: bytes, offset: int = 0) -> Tuple[Any, int]:
        end = offset + self.width
        if offset < 0 or end > len(buf):
            raise OutOfBounds(offset, self.width, len(buf))
        return self.extract(buf, offset, self.width), end


@dataclass(frozen=True)
class ConditionalReader:
    """Reader that branches on fields decoded earlier in the same record.

    `resolve` is called as resolve(buf, offset, record) and must return
    (value, next_offset). `record` is a read-only view of the partial record.
    """
    resolve: Callable[[bytes, int, Mapping[str, Any]], Tuple[Any, int]]

    kind = ReaderKind.CONDITIONAL

    def __call__(self, buf: bytes, offset: int,
                 record: Mapping[str, Any]) -> Tuple[Any, int]:
        return self.resolve(buf, offset, record)


@dataclass(frozen=True)
class FieldIn:
    """Predicate: record[name] is one of `values`."""
    name: str
    values: frozenset

    def __call__(self, record: Mapping[str, Any]) -> bool:
        return record.get(self.name) in self.values


@dataclass(frozen=True)
class _Gated:
    predicate: Callable[[Mapping[str, Any]], bool]
    reader: ScalarReader

    def __call__(self, buf: bytes, offset: int,
                 record: Mapping[str, Any]) -> Tuple[Any, int]:
        if self.predicate(record):
            return self.reader(buf, offset)
        return ABSENT, offset


def field_in(name: str, values: Iterable[Any]) -> FieldIn:
    return FieldIn(name, frozenset(values))


def when(predicate: Callable[[Mapping[str, Any]], bool],
         reader: ScalarReader) -> ConditionalReader:
    """Read with `reader` when predicate(record) holds, else ABSENT and no bytes."""
    return ConditionalReader(_Gated(predicate, reader))


def make_reader(type_name: str, width: int) -> ScalarReader:
    """Create a reader for `width` bytes of `type_name`."""
    if type_name not in _EXTRACTORS:
        raise SchemaError(f"Unknown reader type: {type_name}")
    extractor, widths = _EXTRACTORS[type_name]
    if not isinstance(width, int) or isinstance(width, bool) or width < 1:
        raise SchemaError(f"Invalid width for {type_name}: {width!r}")
    if widths is not None and width not in widths:
        raise SchemaError(f"Unsupported width for {type_name}: {width}")
    return ScalarReader(type_name, width, extractor)


@dataclass(frozen=True)
class ReaderRegistry:
    """Immutable lookup of (type, width) -> ScalarReader.

    Built once with build_registry() and passed to whoever authors schemas.
    """
    tables: Mapping[str, Mapping[int, ScalarReader]]

    def for_type(self, type_name: str) -> Mapping[int, ScalarReader]:
        try:
            return self.tables[type_name]
        except KeyError:
            raise SchemaError(f"No readers registered for type '{type_name}'") from None

    def reader(self, type_name: str, width: int) -> ScalarReader:
        table = self.for_type(type_name)
        if width not in table:
            raise SchemaError(
                f"No {type_name} reader for width {width} "
                f"(available: {sorted(table)})"
            )
        return table[width]

    @property
    def types(self) -> Tuple[str, ...]:
        return tuple(self.tables)


def build_registry(text_widths: Iterable[int] = (4,),
                   uint_widths: Iterable[int] = (1, 4, 8),
                   double_widths: Iterable[int] = (8,)) -> ReaderRegistry:
    """Build the reader tables for each supported type."""
    tables: Dict[str, Mapping[int, ScalarReader]] = {}
    for type_name, widths in (('text', text_widths),
                              ('uint', uint_widths),
                              ('double', double_widths)):
        tables[type_name] = MappingProxyType(
            {w: make_reader(type_name, w) for w in widths}
        )
    return ReaderRegistry(MappingProxyType(tables))
