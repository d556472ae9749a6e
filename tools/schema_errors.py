"""
schema_errors.py - Error taxonomy for schema-driven decoding

Every failure aborts the parse of the current buffer. A structural misread
invalidates every later offset, so there is no partial result and no retry.

    DecodeError          base class (a ValueError, like the rest of the decoder)
    ├── OutOfBounds      read would run past the end of the buffer
    ├── SchemaError      malformed description or termination field
    └── SourceUnavailable  the buffer could not be obtained
"""

from typing import Optional


class DecodeError(ValueError):
    """Base class for decode failures.

    Carries the dotted field path (e.g. ``records[2].userId``) and the byte
    offset at which the failure happened, when known.
    """

    def __init__(self, message: str, field: Optional[str] = None,
                 offset: Optional[int] = None):
        self.message = message
        self.field = field
        self.offset = offset
        super().__init__(self._format())

    def _format(self) -> str:
        where = []
        if self.field is not None:
            where.append(f"field '{self.field}'")
        if self.offset is not None:
            where.append(f"offset {self.offset}")
        if not where:
            return self.message
        return f"{self.message} ({', '.join(where)})"

    def within(self, prefix: str) -> 'DecodeError':
        """Return a copy of this error with ``prefix`` prepended to its field path."""
        if self.field is None:
            path = prefix
        elif self.field.startswith('['):
            path = prefix + self.field
        else:
            path = f"{prefix}.{self.field}"
        # Subclass __init__ signatures differ, so bypass them
        clone = type(self).__new__(type(self))
        clone.__dict__.update(self.__dict__)
        DecodeError.__init__(clone, self.message, path, self.offset)
        return clone


class OutOfBounds(DecodeError):
    """A scalar read would consume bytes past the end of the buffer."""

    def __init__(self, offset: int, width: int, length: int,
                 field: Optional[str] = None):
        self.width = width
        self.length = length
        super().__init__(
            f"Buffer too short: need {width} bytes, {max(length - offset, 0)} available",
            field=field, offset=offset,
        )


class SchemaError(DecodeError):
    """The schema description cannot be compiled or executed as written."""


class SourceUnavailable(DecodeError):
    """The collaborator supplying the byte buffer failed."""

    def __init__(self, source: str, reason: str):
        self.source = source
        super().__init__(f"Cannot read '{source}': {reason}")
