import math
import typing as t
from datetime import datetime
from decimal import Context, Decimal, Inexact
from uuid import UUID

from bavard_dict_storage.codec.base import AttributeCodec, Converter, format_duration, parse_duration
from bavard_dict_storage.errors import InvalidArgumentError
from bavard_dict_storage.types.metadata import PrimitiveKind


# DynamoDB has a maximum precision of 38 digits for numbers. Trapping `Inexact` makes values that would have to be
# rounded fail loudly instead of silently losing precision.
_decimal_ctx = Context(prec=38, traps=[Inexact])


def _number_to_attribute(value: t.Union[int, Decimal]) -> dict:
    if isinstance(value, Decimal) and not value.is_finite():
        raise InvalidArgumentError(f"DynamoDB can't store the non-finite number {value}")
    try:
        return {"N": str(_decimal_ctx.create_decimal(value))}
    except Inexact:
        raise InvalidArgumentError(f"{value} has more than 38 significant digits, which DynamoDB can't store")


def _float_to_attribute(value: float) -> dict:
    if not math.isfinite(value):
        raise InvalidArgumentError(f"DynamoDB can't store the non-finite number {value}")
    # `repr` gives the shortest string that parses back to the exact same float.
    return {"N": repr(float(value))}


def _string_to_attribute(value: str) -> dict:
    # Empty strings are stored as null, so an empty string and a missing value read back the same.
    return {"S": value} if value else {"NULL": True}


class DynamoDBAttributeCodec(AttributeCodec):
    """
    Translates entity fields to and from DynamoDB's low-level ``AttributeValue`` model, as used by the boto3 DynamoDB
    client, e.g. ``{"S": "text"}``, ``{"N": "12.5"}``, ``{"BOOL": True}``, ``{"B": b"..."}``, ``{"NULL": True}`` and
    ``{"M": {...}}``. Numbers are stored as decimal strings in ``N`` attributes. Date-times, UUIDs, and durations are
    stored as strings.
    """

    def build_converters(self) -> t.Dict[PrimitiveKind, Converter]:
        integer = Converter(_number_to_attribute, lambda av: int(Decimal(av["N"])))
        floating = Converter(_float_to_attribute, lambda av: float(av["N"]))
        return {
            PrimitiveKind.BOOLEAN: Converter(lambda v: {"BOOL": bool(v)}, lambda av: bool(av["BOOL"])),
            PrimitiveKind.BYTE: integer,
            PrimitiveKind.INT32: integer,
            PrimitiveKind.INT64: integer,
            PrimitiveKind.DOUBLE: floating,
            PrimitiveKind.FLOAT: floating,
            PrimitiveKind.DECIMAL: Converter(_number_to_attribute, lambda av: Decimal(av["N"])),
            PrimitiveKind.BINARY: Converter(lambda v: {"B": bytes(v)}, lambda av: bytes(av["B"])),
            PrimitiveKind.DATETIME: Converter(
                lambda v: {"S": v.isoformat()}, lambda av: datetime.fromisoformat(av["S"])
            ),
            PrimitiveKind.UUID: Converter(lambda v: {"S": str(v)}, lambda av: UUID(av["S"])),
            PrimitiveKind.STRING: Converter(_string_to_attribute, lambda av: av["S"]),
            PrimitiveKind.DURATION: Converter(
                lambda v: {"S": format_duration(v)}, lambda av: parse_duration(av["S"])
            ),
        }

    @property
    def null_value(self) -> dict:
        return {"NULL": True}

    def is_null(self, attribute: dict) -> bool:
        return attribute.get("NULL") is True

    def string_value(self, text: str) -> dict:
        return {"S": text}

    def read_string(self, attribute: dict) -> t.Optional[str]:
        return attribute.get("S")

    def map_value(self, mapping: t.Dict[str, dict]) -> dict:
        return {"M": mapping}

    def read_map(self, attribute: dict) -> t.Optional[t.Dict[str, dict]]:
        return attribute.get("M")
