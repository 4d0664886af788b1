"""
Pydantic v2 models for source columns, destination schemas, table identities, and row events.

Responsibilities
- Define the canonical models exchanged between the upstream event collaborator,
  the type mapper, the encoder, and the catalog adapters.
- Normalize source type names and event kinds on the way in.
- Keep destination schemas immutable once built (frozen models).

Style
- Zero-IO (stdlib + pydantic only).
- Google-style docstrings with Attributes, Raises, and Notes sections.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .errors import SchemaError
from .types import DestinationType, EventKind, SourceType, source_type_from_value

__all__ = [
    "ColumnSpec",
    "TableIdent",
    "DestinationField",
    "DestinationSchema",
    "RowEvent",
]


class ColumnSpec(BaseModel):
    """
    One source column as declared by the upstream schema.

    Attributes:
        name (str): Column name (non-empty).
        data_type (str): Source type name. Known names are normalized to lower case;
            unknown names are kept verbatim and later mapped to a JSON string column.
        required (bool): Column never carries nulls.
        primary_key (bool): Column is (part of) the source primary key.

    Raises:
        pydantic.ValidationError: If the name is empty.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    data_type: str = SourceType.ANY.value
    required: bool = False
    primary_key: bool = False

    @field_validator("name")
    @classmethod
    def _non_empty_name(cls, v: str) -> str:
        if not v:
            raise SchemaError("column name must be non-empty")
        return v

    @field_validator("data_type", mode="before")
    @classmethod
    def _normalize_type(cls, v: Any) -> str:
        known = source_type_from_value(v)
        if known is not None:
            return known.value
        return str(v)

    @property
    def source_type(self) -> SourceType | None:
        """Canonical source type, or None when the declared type is unknown/dynamic."""
        return source_type_from_value(self.data_type)


class TableIdent(BaseModel):
    """
    (namespace, name) pair identifying a destination table.

    Names must not contain "/": they are path segments of data files and state keys.

    Raises:
        pydantic.ValidationError: If the namespace or name contains "/".

    Examples:
        >>> str(TableIdent(namespace="public", name="users"))
        'public.users'
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    namespace: str
    name: str

    @field_validator("namespace", "name")
    @classmethod
    def _no_separator(cls, v: str) -> str:
        if "/" in v:
            raise SchemaError(f"table namespace and name must not contain '/': {v!r}")
        return v

    def __str__(self) -> str:
        return f"{self.namespace}.{self.name}"

    def as_tuple(self) -> tuple[str, str]:
        return (self.namespace, self.name)


class DestinationField(BaseModel):
    """
    One field of a destination (Iceberg) schema.

    Attributes:
        field_id (int): 1-based identifier, stable for the lifetime of the table.
        name (str): Field name, equal to the source column name.
        type (DestinationType): Destination primitive type.
        required (bool): Field is declared non-nullable.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    field_id: int = Field(ge=1)
    name: str
    type: DestinationType
    required: bool = False


class DestinationSchema(BaseModel):
    """
    Ordered destination fields plus the identifier (primary key) field ids.

    Attributes:
        fields (tuple[DestinationField, ...]): Fields in source column order.
        identifier_field_ids (tuple[int, ...]): Ids of fields that are both required
            and primary keys in the source.

    Raises:
        pydantic.ValidationError: On duplicate field ids or identifier ids that do not
            reference a required field.

    Notes:
        Built by icesink.core.typemap.to_destination_schema; catalog adapters rebuild it
        from a loaded table so that writers always use the table's own field ids.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    fields: tuple[DestinationField, ...]
    identifier_field_ids: tuple[int, ...] = ()

    @model_validator(mode="after")
    def _check_ids(self) -> DestinationSchema:
        ids = [f.field_id for f in self.fields]
        if len(ids) != len(set(ids)):
            raise SchemaError(f"duplicate field ids in schema: {ids!r}")
        required = {f.field_id for f in self.fields if f.required}
        stray = [i for i in self.identifier_field_ids if i not in required]
        if stray:
            raise SchemaError(f"identifier fields must be required fields; got {stray!r}")
        return self


class RowEvent(BaseModel):
    """
    A row-change or control event delivered by the upstream collaborator.

    Attributes:
        kind (EventKind): Row kind (insert/update/delete) or control/DDL marker.
        namespace (str): Destination namespace; empty means "use the configured default".
        table (str): Destination table name.
        column_names (list[str]): Column names, aligned with column_values.
        column_values (list[Any]): Column values (None for nulls).
        table_schema (list[ColumnSpec] | None): The row's own source schema.

    Notes:
        Consumed read-only; the encoder never mutates events.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: EventKind
    namespace: str = ""
    table: str
    column_names: list[str] = Field(default_factory=list)
    column_values: list[Any] = Field(default_factory=list)
    table_schema: list[ColumnSpec] | None = None

    @field_validator("kind", mode="before")
    @classmethod
    def _normalize_kind(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @property
    def is_row_event(self) -> bool:
        return self.kind.is_row_event

    def ident(self, default_namespace: str = "") -> TableIdent:
        """Table identity, falling back to default_namespace when namespace is empty."""
        return TableIdent(namespace=self.namespace or default_namespace, name=self.table)

    def value_of(self, column: str) -> tuple[bool, Any]:
        """
        Look up a column value by name.

        Returns:
            tuple[bool, Any]: (found, value). found is False when the column is not named
            in this event or has no value slot.
        """
        try:
            idx = self.column_names.index(column)
        except ValueError:
            return False, None
        if idx >= len(self.column_values):
            return False, None
        return True, self.column_values[idx]

    def source_type_of(self, column: str) -> str | None:
        """Declared source type name of a column in the row's own schema, if any."""
        for col in self.table_schema or ():
            if col.name == column:
                return col.data_type
        return None
