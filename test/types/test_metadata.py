import typing as t
from datetime import datetime, timedelta
from decimal import Decimal
from unittest import TestCase
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field

from bavard_dict_storage.errors import ConfigurationError
from bavard_dict_storage.types.metadata import Byte, Float32, Int32, PrimitiveKind, get_type_metadata


class Origin(BaseModel):
    country: str
    region: t.Optional[str] = None


class Everything(BaseModel):
    flag: bool
    small: Byte
    blob: bytes
    created_at: datetime
    amount: Decimal
    ratio: float
    approx: Float32
    uid: UUID
    count: Int32
    big: int
    text: str
    elapsed: timedelta
    maybe_count: t.Optional[int] = None
    maybe_small: t.Optional[Byte] = None
    tags: t.List[str] = []
    origin: t.Optional[Origin] = None


class Empty(BaseModel):
    pass


class Person(BaseModel):
    display_name: str = Field(alias="displayName")
    nickname: str = Field("", validation_alias=AliasChoices("nick", "nickname"))
    age: int


class TestTypeMetadata(TestCase):
    def test_fields_are_in_declaration_order(self):
        metadata = get_type_metadata(Everything)
        self.assertEqual(metadata.names, list(Everything.model_fields))
        self.assertEqual(len(metadata), 16)
        self.assertIs(metadata.entity_class, Everything)

    def test_resolves_primitive_kinds(self):
        kinds = {field.name: field.kind for field in get_type_metadata(Everything)}
        self.assertEqual(
            kinds,
            {
                "flag": PrimitiveKind.BOOLEAN,
                "small": PrimitiveKind.BYTE,
                "blob": PrimitiveKind.BINARY,
                "created_at": PrimitiveKind.DATETIME,
                "amount": PrimitiveKind.DECIMAL,
                "ratio": PrimitiveKind.DOUBLE,
                "approx": PrimitiveKind.FLOAT,
                "uid": PrimitiveKind.UUID,
                "count": PrimitiveKind.INT32,
                "big": PrimitiveKind.INT64,
                "text": PrimitiveKind.STRING,
                "elapsed": PrimitiveKind.DURATION,
                "maybe_count": PrimitiveKind.INT64,
                "maybe_small": PrimitiveKind.BYTE,
                # Collections and nested models have no primitive kind, so they go through JSON.
                "tags": None,
                "origin": None,
            },
        )

    def test_optional_fields_are_nullable(self):
        fields = {field.name: field for field in get_type_metadata(Everything)}
        self.assertTrue(fields["maybe_count"].nullable)
        self.assertTrue(fields["maybe_small"].nullable)
        self.assertTrue(fields["origin"].nullable)
        self.assertFalse(fields["big"].nullable)
        self.assertFalse(fields["tags"].nullable)

    def test_records_declared_defaults(self):
        fields = {field.name: field for field in get_type_metadata(Everything)}
        self.assertTrue(fields["tags"].has_default)
        self.assertTrue(fields["maybe_count"].has_default)
        self.assertFalse(fields["text"].has_default)

    def test_records_validation_keys(self):
        fields = {field.name: field for field in get_type_metadata(Person)}
        self.assertEqual(fields["display_name"].input_key, "displayName")
        self.assertEqual(fields["nickname"].input_key, "nick")
        self.assertEqual(fields["age"].input_key, "age")

    def test_is_cached(self):
        # Repeated calls return the very same object, rather than re-deriving it.
        self.assertIs(get_type_metadata(Everything), get_type_metadata(Everything))
        self.assertEqual(get_type_metadata(Origin).names, ["country", "region"])

    def test_rejects_unusable_types(self):
        with self.assertRaises(ConfigurationError):
            get_type_metadata(Empty)
        with self.assertRaises(ConfigurationError):
            get_type_metadata(dict)
