import typing as t
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from bavard_dict_storage.codec.base import AttributeCodec, Converter, format_duration, parse_duration
from bavard_dict_storage.types.metadata import PrimitiveKind


def _expect(type_: type) -> t.Callable[[t.Any], t.Any]:
    def check(value):
        if not isinstance(value, type_):
            raise TypeError(f"expected a {type_.__name__} value, got {value!r}")
        return value

    return check


def _to_float(value: t.Any) -> float:
    # Firestore hands whole-valued doubles back as they were written, but be lenient with integers too.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"expected a number, got {value!r}")
    return float(value)


class FirestoreValueCodec(AttributeCodec):
    """
    Translates entity fields to and from Firestore's native document values. Booleans, integers, doubles, bytes,
    strings, maps, and null are stored natively. Decimals, UUIDs, and durations are stored as strings. Date-times are
    stored as ISO 8601 strings rather than Firestore timestamps, because timestamps are normalized to UTC and would
    not read back with the same ``tzinfo`` they were written with.
    """

    def build_converters(self) -> t.Dict[PrimitiveKind, Converter]:
        integer = Converter(int, _expect(int))
        floating = Converter(float, _to_float)
        return {
            PrimitiveKind.BOOLEAN: Converter(bool, _expect(bool)),
            PrimitiveKind.BYTE: integer,
            PrimitiveKind.INT32: integer,
            PrimitiveKind.INT64: integer,
            PrimitiveKind.DOUBLE: floating,
            PrimitiveKind.FLOAT: floating,
            PrimitiveKind.DECIMAL: Converter(str, lambda v: Decimal(_expect(str)(v))),
            PrimitiveKind.BINARY: Converter(bytes, lambda v: bytes(_expect(bytes)(v))),
            PrimitiveKind.DATETIME: Converter(
                lambda v: v.isoformat(), lambda v: datetime.fromisoformat(_expect(str)(v))
            ),
            PrimitiveKind.UUID: Converter(str, lambda v: UUID(_expect(str)(v))),
            # Empty strings are stored as null, so an empty string and a missing value read back the same.
            PrimitiveKind.STRING: Converter(lambda v: v or None, _expect(str)),
            PrimitiveKind.DURATION: Converter(format_duration, lambda v: parse_duration(_expect(str)(v))),
        }

    @property
    def null_value(self) -> None:
        return None

    def is_null(self, attribute: t.Any) -> bool:
        return attribute is None

    def string_value(self, text: str) -> str:
        return text

    def read_string(self, attribute: t.Any) -> t.Optional[str]:
        return attribute if isinstance(attribute, str) else None

    def map_value(self, mapping: t.Dict[str, t.Any]) -> t.Dict[str, t.Any]:
        return mapping

    def read_map(self, attribute: t.Any) -> t.Optional[t.Dict[str, t.Any]]:
        return attribute if isinstance(attribute, dict) else None
