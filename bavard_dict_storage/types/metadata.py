import sys
import typing as t
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field
from pydantic.fields import FieldInfo

from bavard_dict_storage.errors import ConfigurationError


class PrimitiveKind(Enum):
    """The field types every attribute codec must have a registered converter for."""

    BOOLEAN = "boolean"
    BYTE = "byte"
    BINARY = "binary"
    DATETIME = "datetime"
    DECIMAL = "decimal"
    DOUBLE = "double"
    FLOAT = "float"
    UUID = "uuid"
    INT32 = "int32"
    INT64 = "int64"
    STRING = "string"
    DURATION = "duration"


Byte = t.Annotated[int, Field(ge=0, le=255), PrimitiveKind.BYTE]
"""An unsigned 8-bit integer field."""

Int32 = t.Annotated[int, Field(ge=-(2 ** 31), le=2 ** 31 - 1), PrimitiveKind.INT32]
"""A signed 32-bit integer field. Plain ``int`` fields are treated as signed 64-bit integers."""

Float32 = t.Annotated[float, PrimitiveKind.FLOAT]
"""A single precision float field. Plain ``float`` fields are treated as doubles."""

_KINDS_BY_TYPE: t.Dict[type, PrimitiveKind] = {
    bool: PrimitiveKind.BOOLEAN,
    bytes: PrimitiveKind.BINARY,
    datetime: PrimitiveKind.DATETIME,
    Decimal: PrimitiveKind.DECIMAL,
    float: PrimitiveKind.DOUBLE,
    UUID: PrimitiveKind.UUID,
    int: PrimitiveKind.INT64,
    str: PrimitiveKind.STRING,
    timedelta: PrimitiveKind.DURATION,
}

ZERO_VALUES: t.Dict[PrimitiveKind, t.Any] = {
    PrimitiveKind.BOOLEAN: False,
    PrimitiveKind.BYTE: 0,
    PrimitiveKind.BINARY: b"",
    PrimitiveKind.DATETIME: datetime.min,
    PrimitiveKind.DECIMAL: Decimal(0),
    PrimitiveKind.DOUBLE: 0.0,
    PrimitiveKind.FLOAT: 0.0,
    PrimitiveKind.UUID: UUID(int=0),
    PrimitiveKind.INT32: 0,
    PrimitiveKind.INT64: 0,
    PrimitiveKind.STRING: "",
    PrimitiveKind.DURATION: timedelta(0),
}

_UNION_TYPES: t.Tuple[t.Any, ...] = (t.Union,)
if sys.version_info >= (3, 10):
    from types import UnionType

    _UNION_TYPES += (UnionType,)


@dataclass(frozen=True)
class FieldDescriptor:
    """Describes one declared field of an entity type."""

    name: str
    annotation: t.Any
    """The field's full declared type, used when falling back to JSON serialization."""
    kind: t.Optional[PrimitiveKind]
    """The registered primitive kind of the field, or ``None`` if it has to go through the JSON fallback."""
    nullable: bool
    """Whether the field was declared as ``Optional``."""
    has_default: bool
    input_key: str
    """The key the field is read from when validating a model, i.e. its validation alias if it has one."""


@dataclass(frozen=True)
class TypeMetadata:
    entity_class: t.Type[BaseModel]
    fields: t.Tuple[FieldDescriptor, ...]

    def __iter__(self) -> t.Iterator[FieldDescriptor]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    @property
    def names(self) -> t.List[str]:
        return [field.name for field in self.fields]


def _unwrap_optional(annotation: t.Any) -> t.Tuple[t.Any, bool]:
    if t.get_origin(annotation) in _UNION_TYPES:
        args = t.get_args(annotation)
        non_none = [arg for arg in args if arg is not type(None)]
        if len(non_none) == 1 and len(args) == 2:
            return non_none[0], True
    return annotation, False


def _input_key(name: str, info: FieldInfo) -> str:
    alias = info.validation_alias
    if isinstance(alias, AliasChoices):
        alias = alias.choices[0]
    if isinstance(alias, str):
        return alias
    return info.alias or name


def _resolve_kind(annotation: t.Any, metadata: t.Sequence[t.Any]) -> t.Optional[PrimitiveKind]:
    if t.get_origin(annotation) is t.Annotated:
        base, *extra = t.get_args(annotation)
        return _resolve_kind(base, [*metadata, *extra])
    for item in metadata:
        if isinstance(item, PrimitiveKind):
            return item
    if isinstance(annotation, type):
        return _KINDS_BY_TYPE.get(annotation)
    return None


@lru_cache(maxsize=None)
def get_type_metadata(entity_class: t.Type[BaseModel]) -> TypeMetadata:
    """
    Returns the ordered field descriptors of the pydantic model ``entity_class``, in declaration order. The result is
    computed once per class and cached for the life of the process.

    Raises
    ------
    ConfigurationError
        If ``entity_class`` is not a pydantic model, or declares no fields.
    """
    if not (isinstance(entity_class, type) and issubclass(entity_class, BaseModel)):
        raise ConfigurationError(f"{entity_class!r} is not a pydantic model, so it can't be used as an entity type")
    fields = []
    for name, info in entity_class.model_fields.items():
        inner, nullable = _unwrap_optional(info.annotation)
        # Pydantic hoists the metadata of a top-level `Annotated` onto the field info.
        kind = _resolve_kind(inner, [] if nullable else info.metadata)
        fields.append(
            FieldDescriptor(
                name=name,
                annotation=info.annotation,
                kind=kind,
                nullable=nullable,
                has_default=not info.is_required(),
                input_key=_input_key(name, info),
            )
        )
    if not fields:
        raise ConfigurationError(f"entity type {entity_class.__name__} has no fields to persist")
    return TypeMetadata(entity_class, tuple(fields))
