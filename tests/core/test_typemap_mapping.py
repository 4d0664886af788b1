from __future__ import annotations

import pytest

from icesink.core import ColumnSpec, DestinationType, SchemaError, map_source_type, to_destination_schema


def _three_columns() -> list[ColumnSpec]:
    return [
        ColumnSpec(name="id", data_type="int64", required=True, primary_key=True),
        ColumnSpec(name="name", data_type="string", required=True),
        ColumnSpec(name="tag", data_type="any"),
    ]


def test_three_column_schema_fields_and_identifiers() -> None:
    schema = to_destination_schema(_three_columns())

    assert [(f.field_id, f.name, f.type) for f in schema.fields] == [
        (1, "id", DestinationType.LONG),
        (2, "name", DestinationType.STRING),
        (3, "tag", DestinationType.STRING),
    ]
    assert schema.identifier_field_ids == (1,)
    assert [f.required for f in schema.fields] == [True, True, False]


def test_mapping_is_deterministic() -> None:
    first = to_destination_schema(_three_columns())
    second = to_destination_schema(_three_columns())
    assert first == second
    assert [f.field_id for f in first.fields] == [f.field_id for f in second.fields]


def test_identifier_requires_primary_key_and_required() -> None:
    cols = [
        ColumnSpec(name="a", data_type="int32", required=True, primary_key=True),
        ColumnSpec(name="b", data_type="int32", required=False, primary_key=True),
        ColumnSpec(name="c", data_type="int32", required=True, primary_key=False),
    ]
    schema = to_destination_schema(cols)
    assert schema.identifier_field_ids == (1,)


@pytest.mark.parametrize(
    ("source", "expected"),
    [
        ("int64", DestinationType.LONG),
        ("int32", DestinationType.INT),
        ("int16", DestinationType.INT),
        ("int8", DestinationType.INT),
        ("uint64", DestinationType.LONG),
        ("uint32", DestinationType.LONG),
        ("uint16", DestinationType.INT),
        ("uint8", DestinationType.INT),
        ("float32", DestinationType.FLOAT),
        ("float64", DestinationType.DOUBLE),
        ("bytes", DestinationType.BINARY),
        ("string", DestinationType.STRING),
        ("boolean", DestinationType.BOOLEAN),
        ("date", DestinationType.DATE),
        ("datetime", DestinationType.TIMESTAMPTZ),
        ("timestamp", DestinationType.TIMESTAMPTZ),
        ("interval", DestinationType.STRING),
        ("any", DestinationType.STRING),
        ("jsonb", DestinationType.STRING),
        ("INT64", DestinationType.LONG),
    ],
)
def test_type_table(source: str, expected: DestinationType) -> None:
    assert map_source_type(source) is expected


def test_missing_schema_raises_schema_error() -> None:
    with pytest.raises(SchemaError, match="schema is missing"):
        to_destination_schema(None)


def test_empty_schema_is_valid() -> None:
    schema = to_destination_schema([])
    assert schema.fields == ()
    assert schema.identifier_field_ids == ()
