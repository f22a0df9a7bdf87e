"""Tests for specdispatch.model.compiler and the TypeRef expressions it produces."""

from __future__ import annotations

import logging
from typing import Any

import pytest

from specdispatch.exceptions import (
    CyclicDependencyError,
    GenerationError,
    InvalidReferenceError,
    ReferenceChainError,
    UnsupportedSchemaError,
)
from specdispatch.model.compiler import TypeModelCompiler
from specdispatch.models import CompiledKind, CompiledType, TypeRef, TypeRefKind


def _ref(name: str) -> dict[str, str]:
    return {"$ref": f"#/components/schemas/{name}"}


def _compile(schemas: dict[str, Any]) -> dict[str, CompiledType]:
    compiler = TypeModelCompiler(schemas)
    compiler.compile_all()
    return compiler.types


BAR = {
    "type": "object",
    "required": ["foo", "bar"],
    "properties": {"foo": {"type": "string"}, "bar": {"type": "string"}},
}
BAZ = {
    "type": "object",
    "properties": {"foo": {"type": "string"}, "baz": {"type": "integer"}},
}


# ---------------------------------------------------------------------------
# Structs
# ---------------------------------------------------------------------------


class TestStructs:
    def test_fields(self) -> None:
        types = _compile({
            "Pet": {
                "type": "object",
                "description": "A pet.",
                "required": ["petId"],
                "properties": {
                    "petId": {"type": "integer", "format": "int64"},
                    "name": {"type": "string", "description": "Pet name."},
                    "born": {"type": "string", "format": "date"},
                    "seen": {"type": "string", "format": "date-time"},
                    "photo": {"type": "string", "format": "binary"},
                    "uid": {"type": "string", "format": "uuid"},
                    "weight": {"type": "number"},
                    "good": {"type": "boolean"},
                },
            }
        })
        pet = types["Pet"]
        assert pet.kind == CompiledKind.STRUCT
        assert pet.description == "A pet."
        kinds = {f.json_name: f.type.kind for f in pet.fields}
        assert kinds == {
            "petId": TypeRefKind.INTEGER,
            "name": TypeRefKind.STRING,
            "born": TypeRefKind.DATE,
            "seen": TypeRefKind.DATETIME,
            "photo": TypeRefKind.BYTES,
            "uid": TypeRefKind.STRING,
            "weight": TypeRefKind.NUMBER,
            "good": TypeRefKind.BOOLEAN,
        }
        pet_id = pet.fields[0]
        assert (pet_id.name, pet_id.required) == ("pet_id", True)
        assert pet.fields[1].description == "Pet name."
        assert pet.fields[1].required is False

    def test_untyped_schema_with_properties_is_an_object(self) -> None:
        types = _compile({"Thing": {"properties": {"a": {"type": "string"}}}})
        assert types["Thing"].kind == CompiledKind.STRUCT

    def test_containers(self) -> None:
        types = _compile({
            "Tag": {"type": "object", "properties": {"name": {"type": "string"}}},
            "Pet": {
                "type": "object",
                "properties": {
                    "tags": {"type": "array", "items": _ref("Tag")},
                    "codes": {"type": "array", "uniqueItems": True, "items": {"type": "integer"}},
                    "labels": {"type": "object", "additionalProperties": {"type": "string"}},
                    "meta": {"type": "object"},
                    "anything": {"description": "free"},
                    "nickname": {"type": "string", "nullable": True},
                },
            },
        })
        fields = {f.json_name: f.type for f in types["Pet"].fields}
        assert fields["tags"] == TypeRef.array(TypeRef.named("Tag"))
        assert fields["codes"].unique is True
        assert fields["labels"] == TypeRef.map_of(TypeRef(kind=TypeRefKind.STRING))
        assert fields["meta"].kind == TypeRefKind.EMPTY
        assert fields["anything"].kind == TypeRefKind.ANY
        assert fields["nickname"].nullable is True

    def test_dependency_order(self) -> None:
        types = _compile({
            "Owner": {"type": "object", "properties": {"pet": _ref("Pet")}},
            "Pet": {"type": "object", "properties": {"name": {"type": "string"}}},
        })
        assert list(types) == ["Pet", "Owner"]
        assert types["Owner"].dependencies() == {"Pet"}

    def test_schemas_without_named_type(self) -> None:
        types = _compile({
            "Names": {"type": "array", "items": {"type": "string"}},
            "Name": {"type": "string"},
            "Labels": {"type": "object", "additionalProperties": {"type": "string"}},
            "Nothing": {"type": "object"},
            "Whatever": {},
        })
        assert types == {}

    def test_reference_to_inline_schema_is_expanded(self) -> None:
        types = _compile({
            "Names": {"type": "array", "items": {"type": "string"}},
            "Pet": {"type": "object", "properties": {"names": _ref("Names")}},
        })
        assert types["Pet"].fields[0].type == TypeRef.array(TypeRef(kind=TypeRefKind.STRING))

    def test_reference_to_nullable_named_type(self) -> None:
        types = _compile({
            "Tag": {"type": "object", "nullable": True, "properties": {"a": {"type": "string"}}},
            "Pet": {"type": "object", "properties": {"tag": _ref("Tag")}},
        })
        tag = types["Pet"].fields[0].type
        assert (tag.name, tag.nullable) == ("Tag", True)

    def test_open_api_31_null_type(self) -> None:
        types = _compile({
            "Pet": {"type": "object", "properties": {"name": {"type": ["string", "null"]}}}
        })
        assert types["Pet"].fields[0].type.nullable is True

    def test_field_names_avoid_model_attributes(self) -> None:
        types = _compile({
            "Doc": {
                "type": "object",
                "properties": {"json": {"type": "string"}, "class": {"type": "string"}},
            }
        })
        assert [f.name for f in types["Doc"].fields] == ["json_", "class_"]

    def test_inline_enum_rejected(self) -> None:
        with pytest.raises(UnsupportedSchemaError, match="inline enum"):
            _compile({
                "Pet": {
                    "type": "object",
                    "properties": {"kind": {"type": "string", "enum": ["a"]}},
                }
            })

    def test_inline_object_rejected(self) -> None:
        with pytest.raises(UnsupportedSchemaError, match="inline object"):
            _compile({
                "Pet": {
                    "type": "object",
                    "properties": {
                        "owner": {"type": "object", "properties": {"a": {"type": "string"}}}
                    },
                }
            })

    def test_missing_reference(self) -> None:
        with pytest.raises(InvalidReferenceError, match="does not exist"):
            _compile({"Pet": {"type": "object", "properties": {"tag": _ref("Tag")}}})

    def test_reference_chain(self) -> None:
        with pytest.raises(ReferenceChainError):
            _compile({
                "Tag": {"type": "object", "properties": {"a": {"type": "string"}}},
                "Alias": _ref("Tag"),
                "Pet": {"type": "object", "properties": {"tag": _ref("Alias")}},
            })

    def test_name_collision(self) -> None:
        with pytest.raises(GenerationError, match="both map to type name `SortBy`"):
            _compile({
                "sort-by": {"type": "string", "enum": ["a"]},
                "SortBy": {"type": "string", "enum": ["b"]},
            })


# ---------------------------------------------------------------------------
# Cycles
# ---------------------------------------------------------------------------


class TestCycles:
    def test_mutual_reference(self) -> None:
        with pytest.raises(CyclicDependencyError) as exc_info:
            _compile({
                "Foo": {"type": "object", "properties": {"bar": _ref("Bar")}},
                "Bar": {"type": "object", "properties": {"foo": _ref("Foo")}},
            })
        assert str(exc_info.value) == "dependency cycle detected between models: Foo -> Bar -> Foo"
        assert exc_info.value.exit_code == 9

    def test_self_reference(self) -> None:
        with pytest.raises(CyclicDependencyError, match="Node -> Node"):
            _compile({"Node": {"type": "object", "properties": {"next": _ref("Node")}}})

    def test_cycle_through_array(self) -> None:
        with pytest.raises(CyclicDependencyError):
            _compile({
                "Tree": {
                    "type": "object",
                    "properties": {"children": {"type": "array", "items": _ref("Tree")}},
                }
            })

    def test_cyclic_all_of(self) -> None:
        with pytest.raises(CyclicDependencyError):
            _compile({"A": {"allOf": [_ref("B")]}, "B": {"allOf": [_ref("A")]}})


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class TestEnums:
    def test_string_members(self) -> None:
        types = _compile({"Kind": {"type": "string", "enum": ["a", "B", "1", ""]}})
        kind = types["Kind"]
        assert kind.kind == CompiledKind.ENUM
        assert [(m.name, m.value) for m in kind.members] == [
            ("A", "a"),
            ("B", "B"),
            ("Value1", "1"),
            ("EmptyString", ""),
        ]

    def test_member_name_collisions(self) -> None:
        types = _compile({"Kind": {"type": "string", "enum": ["a-b", "a_b"]}})
        assert [m.name for m in types["Kind"].members] == ["AB", "AB2"]

    def test_integer_members(self) -> None:
        types = _compile({"Level": {"type": "integer", "enum": [1, -2]}})
        assert [(m.name, m.value) for m in types["Level"].members] == [
            ("Value1", 1),
            ("ValueMinus2", -2),
        ]

    def test_const(self) -> None:
        types = _compile({"Only": {"type": "string", "const": "x"}})
        assert [m.value for m in types["Only"].members] == ["x"]

    def test_null_literal_rejected(self) -> None:
        with pytest.raises(UnsupportedSchemaError, match="nullable enum"):
            _compile({"Kind": {"type": "string", "nullable": True, "enum": ["a", None]}})


# ---------------------------------------------------------------------------
# Unions
# ---------------------------------------------------------------------------


class TestTaggedUnions:
    def test_mapping(self) -> None:
        types = _compile({
            "Foo": {
                "oneOf": [_ref("Bar"), _ref("Baz")],
                "discriminator": {
                    "propertyName": "foo",
                    "mapping": {"bar": "#/components/schemas/Bar", "baz": "#/components/schemas/Baz"},
                },
            },
            "Bar": BAR,
            "Baz": BAZ,
        })
        foo = types["Foo"]
        assert foo.kind == CompiledKind.TAGGED_UNION
        assert foo.discriminator == "foo"
        assert [(v.name, v.tag) for v in foo.variants] == [("Bar", "bar"), ("Baz", "baz")]
        # The tag is consumed to select the variant.
        assert [f.json_name for f in foo.variants[0].fields] == ["bar"]
        assert [f.json_name for f in foo.variants[1].fields] == ["baz"]

    def test_without_mapping(self) -> None:
        types = _compile({
            "Foo": {"oneOf": [_ref("Bar"), _ref("Baz")], "discriminator": {"propertyName": "foo"}},
            "Bar": BAR,
            "Baz": BAZ,
        })
        assert [(v.name, v.tag) for v in types["Foo"].variants] == [("Bar", "Bar"), ("Baz", "Baz")]

    def test_partial_bare_name_mapping(self) -> None:
        types = _compile({
            "Foo": {
                "oneOf": [_ref("Bar"), _ref("Baz")],
                "discriminator": {"propertyName": "foo", "mapping": {"b": "Baz"}},
            },
            "Bar": BAR,
            "Baz": BAZ,
        })
        assert [(v.name, v.tag) for v in types["Foo"].variants] == [("Baz", "b"), ("Bar", "Bar")]

    def test_mapping_to_unknown_branch(self) -> None:
        with pytest.raises(GenerationError, match="unknown type `Qux`"):
            _compile({
                "Foo": {
                    "oneOf": [_ref("Bar")],
                    "discriminator": {"propertyName": "foo", "mapping": {"q": "Qux"}},
                },
                "Bar": BAR,
            })

    def test_empty_discriminator(self) -> None:
        with pytest.raises(UnsupportedSchemaError, match="empty discriminator"):
            _compile({
                "Foo": {"oneOf": [_ref("Bar")], "discriminator": {"propertyName": ""}},
                "Bar": BAR,
            })

    def test_all_of_variant(self) -> None:
        types = _compile({
            "Base": {"type": "object", "required": ["id"], "properties": {"id": {"type": "string"}}},
            "Dog": {
                "allOf": [
                    _ref("Base"),
                    {"type": "object", "properties": {"kind": {"type": "string"}, "bark": {"type": "boolean"}}},
                ]
            },
            "Animal": {"oneOf": [_ref("Dog")], "discriminator": {"propertyName": "kind"}},
        })
        dog = types["Animal"].variants[0]
        assert [f.json_name for f in dog.fields] == ["id", "bark"]


class TestUntaggedUnions:
    def test_variants_in_declaration_order(self) -> None:
        types = _compile({"Foo": {"oneOf": [_ref("Bar"), _ref("Baz")]}, "Bar": BAR, "Baz": BAZ})
        foo = types["Foo"]
        assert foo.kind == CompiledKind.UNTAGGED_UNION
        assert [(v.name, v.tag) for v in foo.variants] == [("Bar", None), ("Baz", None)]
        assert [f.json_name for f in foo.variants[0].fields] == ["foo", "bar"]

    def test_overlap_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="specdispatch"):
            _compile({"Foo": {"oneOf": [_ref("Baz"), _ref("Bar")]}, "Bar": BAR, "Baz": BAZ})
        assert "variant `Baz` may match payloads meant for later variant `Bar`" in caplog.text

    def test_inline_branch_rejected(self) -> None:
        with pytest.raises(UnsupportedSchemaError, match="must be references"):
            _compile({"Foo": {"oneOf": [{"type": "object", "properties": {"a": {"type": "string"}}}]}})

    def test_scalar_branch_rejected(self) -> None:
        with pytest.raises(UnsupportedSchemaError, match="must be an object type"):
            _compile({"Foo": {"oneOf": [_ref("Name")]}, "Name": {"type": "string"}})

    def test_any_of_rejected(self) -> None:
        with pytest.raises(UnsupportedSchemaError, match="`anyOf` schema `Foo`"):
            _compile({"Foo": {"anyOf": [_ref("Bar")]}, "Bar": BAR})


# ---------------------------------------------------------------------------
# allOf
# ---------------------------------------------------------------------------


class TestAllOf:
    def test_merges_components(self) -> None:
        types = _compile({
            "Base": {"type": "object", "required": ["id"], "properties": {"id": {"type": "integer"}}},
            "Pet": {
                "allOf": [
                    _ref("Base"),
                    {
                        "type": "object",
                        "required": ["name"],
                        "properties": {"name": {"type": "string"}},
                        "additionalProperties": True,
                    },
                ]
            },
        })
        pet = types["Pet"]
        assert pet.kind == CompiledKind.STRUCT
        assert [(f.json_name, f.required) for f in pet.fields] == [("id", True), ("name", True)]
        assert pet.extra == TypeRef(kind=TypeRefKind.ANY)

    def test_identical_duplicate_property(self) -> None:
        types = _compile({
            "Pet": {
                "allOf": [
                    {"type": "object", "properties": {"id": {"type": "integer"}}},
                    {"type": "object", "properties": {"id": {"type": "integer"}}},
                ]
            }
        })
        assert [f.json_name for f in types["Pet"].fields] == ["id"]

    def test_conflicting_property(self) -> None:
        with pytest.raises(GenerationError, match="property `id` of `Pet`"):
            _compile({
                "Pet": {
                    "allOf": [
                        {"type": "object", "properties": {"id": {"type": "integer"}}},
                        {"type": "object", "properties": {"id": {"type": "string"}}},
                    ]
                }
            })

    def test_multiple_additional_properties(self) -> None:
        with pytest.raises(GenerationError, match="only one `additionalProperties`"):
            _compile({
                "Pet": {
                    "allOf": [
                        {"type": "object", "properties": {"a": {"type": "integer"}}, "additionalProperties": True},
                        {"type": "object", "properties": {"b": {"type": "integer"}}, "additionalProperties": False},
                    ]
                }
            })

    def test_non_object_component(self) -> None:
        with pytest.raises(UnsupportedSchemaError, match="allOf"):
            _compile({"Pet": {"allOf": [{"type": "string"}]}})


# ---------------------------------------------------------------------------
# TypeRef
# ---------------------------------------------------------------------------


class TestTypeRef:
    @pytest.mark.parametrize(
        "ref, expected",
        [
            (TypeRef.array(TypeRef.named("Pet")), "list[Pet]"),
            (TypeRef.map_of(TypeRef(kind=TypeRefKind.INTEGER)), "dict[str, int]"),
            (TypeRef(kind=TypeRefKind.DATETIME, nullable=True), "Optional[datetime]"),
            (TypeRef(kind=TypeRefKind.EMPTY), "EmptyModel"),
            (TypeRef(kind=TypeRefKind.ANY), "Any"),
        ],
    )
    def test_describe(self, ref: TypeRef, expected: str) -> None:
        assert ref.describe() == expected

    def test_referenced_names(self) -> None:
        ref = TypeRef.map_of(TypeRef.array(TypeRef.named("Pet")))
        assert ref.referenced_names() == {"Pet"}
        assert TypeRef(kind=TypeRefKind.STRING).referenced_names() == set()
