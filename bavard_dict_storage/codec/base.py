import re
import typing as t
from abc import ABC, abstractmethod
from datetime import timedelta
from functools import lru_cache
from types import MappingProxyType

from pydantic import TypeAdapter, ValidationError

from bavard_dict_storage.errors import ConfigurationError, DecodeInconsistencyError
from bavard_dict_storage.types.entity import DictionaryStorageEntity
from bavard_dict_storage.types.metadata import ZERO_VALUES, FieldDescriptor, PrimitiveKind, TypeMetadata


ENTITY = "Entity"
ENTITY_ID = "EntityId"
PARTITION_ID = "PartitionId"

_DURATION_PATTERN = re.compile(r"^(-)?(?:(\d+)\.)?(\d{2}):(\d{2}):(\d{2})(?:\.(\d{1,7}))?$")


def format_duration(value: timedelta) -> str:
    """Formats ``value`` as ``[-][d.]hh:mm:ss[.ffffff]``."""
    sign = "-" if value < timedelta(0) else ""
    value = abs(value)
    minutes, seconds = divmod(value.seconds, 60)
    hours, minutes = divmod(minutes, 60)
    text = f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    if value.days:
        text = f"{value.days}.{text}"
    if value.microseconds:
        text = f"{text}.{value.microseconds:06d}"
    return sign + text


def parse_duration(text: str) -> timedelta:
    """The inverse of :func:`format_duration`. Also accepts 7 fractional digits (100ns ticks), truncating them."""
    match = _DURATION_PATTERN.match(text)
    if match is None:
        raise ValueError(f"invalid duration string {text!r}")
    sign, days, hours, minutes, seconds, fraction = match.groups()
    value = timedelta(
        days=int(days or 0),
        hours=int(hours),
        minutes=int(minutes),
        seconds=int(seconds),
        microseconds=int((fraction or "").ljust(7, "0")) // 10,
    )
    return -value if sign else value


@lru_cache(maxsize=None)
def _json_adapter(annotation: t.Any) -> TypeAdapter:
    return TypeAdapter(annotation)


class Converter(t.NamedTuple):
    """An ``(encode, decode)`` pair translating one primitive kind to and from a back-end attribute value."""

    encode: t.Callable[[t.Any], t.Any]
    decode: t.Callable[[t.Any], t.Any]


class AttributeCodec(ABC):
    """
    Abstract base class for translating entity field values to and from a back-end's native attribute values.
    Subclasses describe the back-end's attribute value model (its null marker, string, and map values) and register
    one :class:`Converter` for every :class:`~bavard_dict_storage.types.metadata.PrimitiveKind`. Fields whose type has
    no primitive kind are serialized to JSON and stored as a string attribute.

    Every entity is stored as one document of the form::

        {"EntityId": <string>, "PartitionId": <string>, "Entity": <map of field name to attribute value>}
    """

    def __init__(self):
        converters = self.build_converters()
        missing = set(PrimitiveKind) - set(converters)
        if missing:
            names = ", ".join(sorted(kind.name for kind in missing))
            raise ConfigurationError(f"{type(self).__name__} has no converters registered for: {names}")
        self._converters = MappingProxyType(dict(converters))

    @abstractmethod
    def build_converters(self) -> t.Dict[PrimitiveKind, Converter]:
        """Returns the converter to use for each primitive kind. Called once, at construction."""
        pass

    @property
    @abstractmethod
    def null_value(self) -> t.Any:
        pass

    @abstractmethod
    def is_null(self, attribute: t.Any) -> bool:
        pass

    @abstractmethod
    def string_value(self, text: str) -> t.Any:
        pass

    @abstractmethod
    def read_string(self, attribute: t.Any) -> t.Optional[str]:
        pass

    @abstractmethod
    def map_value(self, mapping: t.Dict[str, t.Any]) -> t.Any:
        pass

    @abstractmethod
    def read_map(self, attribute: t.Any) -> t.Optional[t.Dict[str, t.Any]]:
        pass

    def encode(self, value: t.Any, field: FieldDescriptor) -> t.Any:
        """Encodes one field value into an attribute value. ``None`` becomes the back-end's null marker."""
        if value is None:
            return self.null_value
        if field.kind is None:
            return self.string_value(_json_adapter(field.annotation).dump_json(value, indent=2).decode("utf-8"))
        return self._converters[field.kind].encode(value)

    def decode(self, attribute: t.Any, field: FieldDescriptor) -> t.Any:
        """
        Decodes one attribute value into a field value. The null marker decodes to the field's zero value (see
        :meth:`zero_value`).

        Raises
        ------
        DecodeInconsistencyError
            If ``attribute`` can't be decoded as ``field``'s type.
        """
        if attribute is None or self.is_null(attribute):
            return self.zero_value(field)
        try:
            if field.kind is None:
                text = self.read_string(attribute)
                if text is None:
                    raise TypeError(f"expected a string attribute holding JSON, got {attribute!r}")
                return _json_adapter(field.annotation).validate_json(text)
            return self._converters[field.kind].decode(attribute)
        except (KeyError, TypeError, ValueError, ArithmeticError) as exc:
            raise DecodeInconsistencyError(f"cannot decode attribute [{field.name}]: {exc}") from exc

    @staticmethod
    def zero_value(field: FieldDescriptor) -> t.Any:
        """``None`` for nullable fields, the kind's zero value for primitives, and ``None`` for everything else."""
        if field.nullable or field.kind is None:
            return None
        return ZERO_VALUES[field.kind]

    def encode_key(self, entity_id: str, partition_id: str) -> t.Dict[str, t.Any]:
        return {ENTITY_ID: self.string_value(entity_id), PARTITION_ID: self.string_value(partition_id)}

    def encode_document(self, entity: DictionaryStorageEntity, metadata: TypeMetadata) -> t.Dict[str, t.Any]:
        attributes = {field.name: self.encode(getattr(entity.entity, field.name), field) for field in metadata}
        return {**self.encode_key(entity.entity_id, entity.partition_id), ENTITY: self.map_value(attributes)}

    def decode_document(self, document: t.Mapping[str, t.Any], metadata: TypeMetadata) -> DictionaryStorageEntity:
        """
        Rebuilds a :class:`~bavard_dict_storage.types.entity.DictionaryStorageEntity` from a stored document. Fields
        missing from the document, or stored as the null marker, are left at the model's declared default if it has
        one, and set to their zero value otherwise.

        Raises
        ------
        DecodeInconsistencyError
            If the document is missing a key attribute or its entity map, or holds values that don't fit the entity
            type.
        """
        entity_id = self.decode_key(document, ENTITY_ID)
        partition_id = self.decode_key(document, PARTITION_ID)
        attributes = self.read_map(document[ENTITY]) if document.get(ENTITY) is not None else None
        if attributes is None:
            raise DecodeInconsistencyError(f"[{ENTITY}] not found.")
        values = {}
        for field in metadata:
            attribute = attributes.get(field.name)
            if (attribute is None or self.is_null(attribute)) and field.has_default:
                continue
            values[field.input_key] = self.decode(attribute, field)
        try:
            entity = metadata.entity_class.model_validate(values)
        except ValidationError as exc:
            raise DecodeInconsistencyError(
                f"stored entity {partition_id}/{entity_id} is not a valid {metadata.entity_class.__name__}: {exc}"
            ) from exc
        return DictionaryStorageEntity(entity_id=entity_id, partition_id=partition_id, entity=entity)

    def decode_key(self, document: t.Mapping[str, t.Any], name: str) -> str:
        attribute = document.get(name)
        value = self.read_string(attribute) if attribute is not None else None
        if not value:
            raise DecodeInconsistencyError(f"[{name}] not found.")
        return value
