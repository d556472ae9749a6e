#!/usr/bin/env python3
"""
txnlog.py - Decode and summarize MPS7 transaction logs

Header:

    | 4 byte magic string "MPS7" | 1 byte version | 4 byte (uint32) # of records |

Record:

    | 1 byte record type enum | 4 byte (uint32) Unix timestamp | 8 byte (uint64) user ID |

    Record type enum:
        0x00: Debit
        0x01: Credit
        0x02: StartAutopay
        0x03: EndAutopay

    Debit and Credit records carry an additional 8 byte (float64) amount in
    dollars at the end of the record. All multi-byte fields are in network
    byte order.

Usage:
    python tools/txnlog.py txnlog.dat
    python tools/txnlog.py txnlog.dat --user 2456938384156277127 --json
    python tools/txnlog.py txnlog.dat --schema schemas/mps7.yaml -v
"""

import argparse
import json
import logging
import sys
from dataclasses import asdict, dataclass
from enum import IntEnum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from scalar_readers import ReaderRegistry, build_registry, field_in, when
from schema_compiler import array_of, compile_schema
from schema_errors import DecodeError, SchemaError, SourceUnavailable
from schema_executor import execute
from schema_loader import load_schema

logger = logging.getLogger(__name__)

MAGIC = 'MPS7'
DEFAULT_USER_ID = 2456938384156277127


class RecordType(IntEnum):
    DEBIT = 0
    CREDIT = 1
    START_AUTOPAY = 2
    END_AUTOPAY = 3


MONETARY_TYPES = (RecordType.DEBIT, RecordType.CREDIT)
RECORD_KEYS = ('recordType', 'userId', 'dollarAmount')


def header_schema(registry: ReaderRegistry) -> Dict[str, Any]:
    uint = registry.for_type('uint')
    return {
        'magicString': registry.for_type('text')[4],
        'version': uint[1],
        'recordCount': uint[4],
    }


def record_schema(registry: ReaderRegistry) -> Dict[str, Any]:
    uint = registry.for_type('uint')
    return {
        'recordType': uint[1],
        'timestamp': uint[4],
        'userId': uint[8],
        'dollarAmount': when(field_in('recordType', [int(t) for t in MONETARY_TYPES]),
                             registry.reader('double', 8)),
    }


def txnlog_schema(registry: ReaderRegistry) -> Dict[str, Any]:
    return {
        **header_schema(registry),
        'records': array_of(record_schema(registry), until='recordCount'),
    }


def read_log(path: Union[str, Path]) -> bytes:
    """Read the whole log file into memory."""
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise SourceUnavailable(str(path), e.strerror or str(e)) from e
    logger.info("Read %d bytes from %s", len(data), path)
    return data


def parse_txnlog(buf: bytes, registry: Optional[ReaderRegistry] = None,
                 schema: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Decode a complete MPS7 log buffer."""
    if schema is None:
        schema = txnlog_schema(registry or build_registry())
    result = execute(buf, compile_schema(schema))
    if result.data.get('magicString') != MAGIC:
        logger.warning("Unexpected magic string %r", result.data.get('magicString'))
    if result.offset < len(buf):
        logger.debug("Ignoring %d trailing byte(s)", len(buf) - result.offset)
    return result.data


def load_txnlog(path: Union[str, Path], registry: Optional[ReaderRegistry] = None,
                schema: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return parse_txnlog(read_log(path), registry, schema)


# ---------------------------------------------------------------------------
# Aggregations
# ---------------------------------------------------------------------------

def _of_type(records: Iterable[Dict[str, Any]], record_type: RecordType):
    return (r for r in records if r['recordType'] == record_type)


def total_amount(records: Iterable[Dict[str, Any]], record_type: RecordType) -> float:
    return sum(r['dollarAmount'] for r in _of_type(records, record_type))


def count_records(records: Iterable[Dict[str, Any]], record_type: RecordType) -> int:
    return sum(1 for _ in _of_type(records, record_type))


def user_balance(records: Iterable[Dict[str, Any]], user_id: int) -> float:
    """Credits minus debits for one user."""
    balance = 0.0
    for r in records:
        if r['userId'] != user_id or r['recordType'] not in MONETARY_TYPES:
            continue
        if r['recordType'] == RecordType.CREDIT:
            balance += r['dollarAmount']
        else:
            balance -= r['dollarAmount']
    return balance


@dataclass
class Summary:
    debit_total: float
    credit_total: float
    autopays_started: int
    autopays_ended: int
    user_id: int
    user_balance: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def check_layout(log: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Return the decoded records, or raise SchemaError if the layout lacks summary fields."""
    records = log.get('records')
    if not isinstance(records, list):
        raise SchemaError("Layout has no repeated 'records' field", field='records')
    for i, record in enumerate(records):
        for key in RECORD_KEYS:
            if key not in record:
                raise SchemaError(f"Record has no '{key}' field", field=f"records[{i}]")
        if (record['recordType'] in MONETARY_TYPES
                and not isinstance(record['dollarAmount'], (int, float))):
            raise SchemaError("Debit/Credit record has no dollar amount",
                              field=f"records[{i}].dollarAmount")
    return records


def summarize(records: List[Dict[str, Any]], user_id: int = DEFAULT_USER_ID) -> Summary:
    return Summary(
        debit_total=total_amount(records, RecordType.DEBIT),
        credit_total=total_amount(records, RecordType.CREDIT),
        autopays_started=count_records(records, RecordType.START_AUTOPAY),
        autopays_ended=count_records(records, RecordType.END_AUTOPAY),
        user_id=user_id,
        user_balance=user_balance(records, user_id),
    )


def print_summary(summary: Summary):
    print(f"What is the total amount in dollars of debits? {summary.debit_total:.2f}")
    print(f"What is the total amount in dollars of credits? {summary.credit_total:.2f}")
    print(f"How many autopays were started? {summary.autopays_started}")
    print(f"How many autopays were ended? {summary.autopays_ended}")
    print(f"What is balance of user ID {summary.user_id}? {summary.user_balance:.2f}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description='Decode an MPS7 transaction log and summarize it'
    )
    parser.add_argument('log', nargs='?', default='txnlog.dat',
                        help='Path to the transaction log (default: txnlog.dat)')
    parser.add_argument('--user', type=int, default=DEFAULT_USER_ID,
                        help='User ID to compute the balance for')
    parser.add_argument('--schema', help='Path to a YAML layout to use instead of the built-in one')
    parser.add_argument('--json', action='store_true',
                        help='Output results as JSON')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable debug logging')
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    registry = build_registry()
    try:
        schema = load_schema(args.schema, registry) if args.schema else None
        log = load_txnlog(args.log, registry, schema)
        records = check_layout(log)
    except DecodeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    summary = summarize(records, args.user)
    if args.json:
        print(json.dumps(summary.to_dict(), indent=2))
    else:
        print_summary(summary)
    return 0


if __name__ == '__main__':
    sys.exit(main())
