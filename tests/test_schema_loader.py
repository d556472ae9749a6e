"""
Tests for loading schema descriptions from YAML layouts.
"""

import sys
from pathlib import Path

import pytest
import yaml

sys.path.insert(0, str(Path(__file__).parent.parent / 'tools'))

from schema_compiler import OpKind, RepeatedSubSchema, compile_schema
from schema_errors import SchemaError, SourceUnavailable
from schema_executor import execute
from schema_loader import load_schema, schema_from_dict
from txnlog import txnlog_schema


class TestLoadSchema:
    """Tests for load_schema() with the shipped layout."""

    def test_mps7_matches_builtin(self, registry, mps7_yaml):
        loaded = load_schema(mps7_yaml, registry)
        assert compile_schema(loaded) == compile_schema(txnlog_schema(registry))

    def test_mps7_decodes(self, registry, mps7_yaml, make_log):
        ops = compile_schema(load_schema(mps7_yaml, registry))
        data = execute(make_log([(0, 1, 2, 10.0), (2, 3, 4)]), ops).data
        assert data['magicString'] == 'MPS7'
        assert [r['dollarAmount'] for r in data['records']] == [10.0, None]

    def test_missing_file(self, registry, tmp_path):
        with pytest.raises(SourceUnavailable):
            load_schema(tmp_path / 'nope.yaml', registry)

    def test_invalid_yaml(self, registry, tmp_path):
        path = tmp_path / 'bad.yaml'
        path.write_text('fields: [\n')
        with pytest.raises(SchemaError, match="Invalid YAML"):
            load_schema(path, registry)

    def test_round_trip_through_yaml_text(self, registry, tmp_path):
        path = tmp_path / 'pair.yaml'
        path.write_text(yaml.safe_dump({
            'name': 'pair',
            'fields': [
                {'name': 'a', 'type': 'u8'},
                {'name': 'b', 'type': 'u32'},
            ],
        }))
        ops = compile_schema(load_schema(path, registry))
        assert execute(bytes([1, 0, 0, 0, 2]), ops).data == {'a': 1, 'b': 2}


class TestSchemaFromDict:
    """Tests for schema_from_dict() conversions."""

    def test_explicit_type_and_length(self, registry):
        desc = schema_from_dict({'fields': [
            {'name': 'magic', 'type': 'ascii', 'length': 4},
            {'name': 'n', 'type': 'uint', 'length': 8},
        ]}, registry)
        assert desc['magic'] is registry.reader('text', 4)
        assert desc['n'] is registry.reader('uint', 8)

    def test_repeat_without_until(self, registry):
        desc = schema_from_dict({'fields': [
            {'name': 'items', 'repeat': {'fields': [{'name': 'v', 'type': 'u8'}]}},
        ]}, registry)
        assert isinstance(desc['items'], RepeatedSubSchema)
        assert desc['items'].until is None
        assert execute(b'\x01\x02', compile_schema(desc)).data == {
            'items': [{'v': 1}, {'v': 2}],
        }

    def test_when_equals_and_dollar_reference(self, registry):
        desc = schema_from_dict({'fields': [
            {'name': 'flag', 'type': 'u8'},
            {'name': 'extra', 'type': 'u8', 'when': {'field': '$flag', 'equals': 1}},
        ]}, registry)
        ops = compile_schema(desc)
        assert ops[1].kind is OpKind.CONDITIONAL
        assert execute(b'\x01\x07', ops).data == {'flag': 1, 'extra': 7}
        assert execute(b'\x00\x07', ops).data == {'flag': 0, 'extra': None}

    @pytest.mark.parametrize("fields,message", [
        ([], "non-empty 'fields'"),
        ([{'type': 'u8'}], "Invalid field definition"),
        ([{'name': 'a'}], "no type"),
        ([{'name': 'a', 'type': 'text'}], "requires a length"),
        ([{'name': 'a', 'type': 'u8', 'length': 2}], "conflicts"),
        ([{'name': 'a', 'type': 'uint', 'length': 2}], "No uint reader"),
        ([{'name': 'a', 'type': 'varint', 'length': 1}], "No readers registered"),
        ([{'name': 'a', 'type': 'u8'}, {'name': 'a', 'type': 'u8'}], "Duplicate"),
        ([{'name': 'a', 'type': 'u8', 'when': {'field': 'x'}}], "needs 'in' or 'equals'"),
        ([{'name': 'a', 'type': 'u8', 'when': 3}], "Invalid when"),
        ([{'name': 'a', 'repeat': 3}], "must be a mapping"),
        ([{'name': 'a', 'type': 'uint', 'length': [4]}], "Length must be an integer"),
        ([{'name': 'a', 'type': 'uint', 'length': True}], "Length must be an integer"),
        ([{'name': 'a', 'type': ['u8']}], "type must be a string"),
        ([{'name': ['a'], 'type': 'u8'}], "Invalid field definition"),
        ([{'name': 'a', 'type': 'u8'}, {'name': 'b', 'type': 'u8',
          'when': {'field': 'a', 'in': [[0, 1]]}}], "unusable value"),
    ])
    def test_malformed_layouts(self, registry, fields, message):
        with pytest.raises(SchemaError, match=message):
            schema_from_dict({'fields': fields}, registry)

    def test_error_path_names_nested_field(self, registry):
        with pytest.raises(SchemaError) as exc_info:
            schema_from_dict({'fields': [
                {'name': 'items', 'repeat': {'fields': [{'name': 'v', 'type': 'u16'}]}},
            ]}, registry)
        assert exc_info.value.field == 'items.v'

    def test_not_a_mapping(self, registry):
        with pytest.raises(SchemaError, match="must be a mapping"):
            schema_from_dict(['fields'], registry)
