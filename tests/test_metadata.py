from __future__ import annotations

import hashlib
from datetime import datetime, timezone

import pytest

from slim_pyramid.contracts.base import PayloadContractError
from slim_pyramid.contracts.levels import (
    METADATA_KEY,
    Capability,
    CodeSchema,
    ContentLength,
    ContentType,
    ContentUnit,
    Dimensions,
    EntityType,
    Importance,
    KeyPoint,
    LengthUnit,
    ListSchema,
    MediaDescription,
    MediaItem,
    MediaType,
    OutlineEntry,
    Phase,
    SchemaDefinition,
    SchemaType,
    SlimEntity,
    SlimMetadata,
    StructuredData,
    TableSchema,
    UnitType,
)
from slim_pyramid.metadata import (
    build_payload,
    build_pyramid,
    compute_source_hash,
    create_slim_metadata,
    measure_tokens,
)
from slim_pyramid.validation import DEFAULT_VALIDATOR, conforms_to, highest_level
from tests.fixtures import GENERATED_AT, LEVEL_FIELDS, SOURCE_HASH, char_tokens


def test_source_hash_is_sha256_of_utf8() -> None:
    assert compute_source_hash("héllo") == hashlib.sha256("héllo".encode("utf-8")).hexdigest()
    assert compute_source_hash(b"abc") == hashlib.sha256(b"abc").hexdigest()


def test_create_metadata_defaults_ttl_from_level() -> None:
    metadata = create_slim_metadata(
        2, "article", SOURCE_HASH, 90, [3, 0, 2], generated_at=GENERATED_AT,
    )

    assert metadata.ttl_seconds == 3600
    assert metadata.available_levels == (0, 2, 3)
    assert metadata.content_type is ContentType.ARTICLE
    assert metadata.to_dict() == {
        "version": "2.1",
        "level": 2,
        "contentType": "article",
        "generatedAt": GENERATED_AT,
        "sourceHash": SOURCE_HASH,
        "tokenCount": 90,
        "availableLevels": [0, 2, 3],
        "ttlSeconds": 3600,
    }


def test_create_metadata_accepts_datetime() -> None:
    metadata = create_slim_metadata(
        0, ContentType.CODE, SOURCE_HASH, 10, [0],
        generated_at=datetime(2026, 1, 1, 10, 0, tzinfo=timezone.utc),
    )

    assert metadata.generated_at == GENERATED_AT


@pytest.mark.parametrize("level,available", [(10, [10]), (4, [1, 2]), (-1, [0])])
def test_create_metadata_rejects_inconsistent_levels(level: int, available) -> None:
    with pytest.raises(ValueError):
        create_slim_metadata(level, "article", SOURCE_HASH, 10, available)


def test_metadata_round_trips_through_wire_form() -> None:
    metadata = create_slim_metadata(5, "report", SOURCE_HASH, 700, [5], generated_at=GENERATED_AT)

    assert SlimMetadata.from_mapping(metadata.to_dict()) == metadata


def test_metadata_from_mapping_names_missing_field() -> None:
    with pytest.raises(ValueError, match="sourceHash"):
        SlimMetadata.from_mapping({
            "version": "2.1", "level": 0, "contentType": "article",
            "generatedAt": GENERATED_AT, "tokenCount": 1, "availableLevels": [0],
        })


@pytest.mark.parametrize("field_name", ["tokenCount", "availableLevels"])
def test_metadata_from_mapping_rejects_null_fields(field_name: str) -> None:
    data = create_slim_metadata(0, "article", SOURCE_HASH, 10, [0], generated_at=GENERATED_AT).to_dict()
    data[field_name] = None

    with pytest.raises(ValueError):
        SlimMetadata.from_mapping(data)


def test_measure_tokens_counts_canonical_json() -> None:
    assert measure_tokens({"b": 1, "a": 2}, char_tokens) == measure_tokens({"a": 2, "b": 1}, char_tokens)

    with pytest.raises(ValueError):
        measure_tokens({"a": 1}, lambda text: -1)


def test_build_payload_stamps_metadata_and_certifies() -> None:
    payload = build_payload(
        1,
        {
            "capabilities": ["query"],
            "title": "Notes",
            "language": "en",
            "length": ContentLength(300, LengthUnit.WORDS),
            "author": None,
        },
        content_type="documentation",
        source_hash=SOURCE_HASH,
        available_levels=[0, 1],
        token_counter=char_tokens,
        generated_at=GENERATED_AT,
    )

    assert payload["contentType"] == "documentation"
    assert payload["length"] == {"value": 300, "unit": "words"}
    assert "author" not in payload
    assert payload[METADATA_KEY]["level"] == 1
    assert payload[METADATA_KEY]["ttlSeconds"] == 86400
    assert payload[METADATA_KEY]["tokenCount"] > 0
    assert conforms_to(payload, 1)


def test_build_payload_converts_records() -> None:
    payload = build_payload(
        3,
        {
            **LEVEL_FIELDS[0],
            **LEVEL_FIELDS[1],
            "outline": [OutlineEntry("s1", "Intro", 1, (OutlineEntry("s1a", "Aside", 2),))],
            "units": [ContentUnit("s1", UnitType.SECTION, 40), ContentUnit("s1a", UnitType.QUOTE, 5, parent_id="s1")],
        },
        content_type="article",
        source_hash=SOURCE_HASH,
        available_levels=[3],
        token_counter=char_tokens,
        generated_at=GENERATED_AT,
    )

    assert payload["outline"][0]["children"][0]["id"] == "s1a"
    assert payload["units"][1]["parentId"] == "s1"
    assert highest_level(payload) == 3


def test_build_payload_rejects_fields_from_higher_levels() -> None:
    with pytest.raises(PayloadContractError, match="not allowed"):
        build_payload(
            0,
            {"capabilities": [], "summaries": {}},
            content_type="article",
            source_hash=SOURCE_HASH,
            available_levels=[0],
            token_counter=char_tokens,
        )


def test_build_payload_rejects_incomplete_fields() -> None:
    with pytest.raises(PayloadContractError) as excinfo:
        build_payload(
            2,
            {**LEVEL_FIELDS[0], **LEVEL_FIELDS[1]},
            content_type="article",
            source_hash=SOURCE_HASH,
            available_levels=[2],
            token_counter=char_tokens,
        )

    assert {e.field_name for e in excinfo.value.errors} == {"outline"}


def test_build_payload_rejects_unknown_level() -> None:
    with pytest.raises(ValueError, match="unknown level"):
        build_payload(
            10, {}, content_type="article", source_hash=SOURCE_HASH,
            available_levels=[10], token_counter=char_tokens,
        )


def test_build_pyramid_accumulates_fields() -> None:
    family = build_pyramid(
        LEVEL_FIELDS,
        content_type="article",
        source_hash=SOURCE_HASH,
        token_counter=char_tokens,
        publish=[0, 2, 5],
        generated_at=GENERATED_AT,
    )

    assert sorted(family) == [0, 2, 5]
    for level, payload in family.items():
        assert highest_level(payload) == level
        assert payload[METADATA_KEY]["availableLevels"] == [0, 2, 5]
        assert payload[METADATA_KEY]["sourceHash"] == SOURCE_HASH
    assert "summaries" in family[5]
    assert "outline" not in family[0]


def test_build_pyramid_shares_one_timestamp() -> None:
    family = build_pyramid(
        {0: LEVEL_FIELDS[0], 1: LEVEL_FIELDS[1]},
        content_type="article",
        source_hash=SOURCE_HASH,
        token_counter=char_tokens,
    )

    assert family[0][METADATA_KEY]["generatedAt"] == family[1][METADATA_KEY]["generatedAt"]


def test_build_pyramid_rejects_unknown_publish_levels() -> None:
    with pytest.raises(ValueError):
        build_pyramid(
            {0: LEVEL_FIELDS[0]},
            content_type="article",
            source_hash=SOURCE_HASH,
            token_counter=char_tokens,
            publish=[0, 12],
        )


def test_records_fill_every_level() -> None:
    fields = {
        0: {"capabilities": [Capability.QUERY, Capability.EXTRACT]},
        1: {"title": "Quarterly data", "language": "en", "length": ContentLength(12, LengthUnit.PAGES)},
        2: {"outline": [OutlineEntry("u1", "Figures", 1)], "phases": [Phase("draft", "p1-p4")]},
        3: {
            "units": [ContentUnit("u1", UnitType.TABLE, 80)],
            "entities": [SlimEntity("ACME", EntityType.ORGANIZATION, 3)],
        },
        4: {
            "summaries": {"u1": "Revenue by quarter."},
            "keyFacts": ["Q4 was strongest"],
            "keyPoints": [KeyPoint("Growth", "u1", Importance.HIGH)],
        },
        5: {"contents": {"u1": "Full table text."}},
        6: {
            "schemas": [
                SchemaDefinition("t1", SchemaType.TABLE, TableSchema(("q", "revenue"), 4, ("Q1", 10))),
                SchemaDefinition("l1", SchemaType.LIST, ListSchema(3, True)),
                SchemaDefinition("c1", SchemaType.INTERFACE, CodeSchema("python", ("load",))),
            ],
        },
        7: {
            "data": {
                "t1": StructuredData("table", rows=(("Q1", 10), ("Q2", 12))),
                "l1": StructuredData("list", items=("a", "b", "c")),
                "c1": StructuredData("code", source="def load(): ..."),
            },
        },
        8: {"media": [MediaItem("m1", MediaType.IMAGE, dimensions=Dimensions(640, 480), unit_id="u1")]},
        9: {"mediaDescriptions": {"m1": MediaDescription("Bar chart", objects=("bars",))}},
    }

    family = build_pyramid(
        fields,
        content_type=ContentType.DATA,
        source_hash=SOURCE_HASH,
        token_counter=char_tokens,
        publish=[9],
        generated_at=GENERATED_AT,
    )
    payload = family[9]

    assert highest_level(payload) == 9
    assert DEFAULT_VALIDATOR.check_references(payload) == ()
    assert payload["capabilities"] == ["query", "extract"]
    assert payload["entities"] == [{"name": "ACME", "type": "organization", "mentions": 3}]
    assert payload["schemas"][0]["definition"] == {"columns": ["q", "revenue"], "rowCount": 4, "sampleRow": ["Q1", 10]}
    assert payload["data"]["c1"] == {"type": "code", "source": "def load(): ..."}
    assert payload["media"][0]["dimensions"] == {"width": 640, "height": 480}
    assert payload["mediaDescriptions"]["m1"] == {"description": "Bar chart", "objects": ["bars"]}


def test_record_invariants() -> None:
    with pytest.raises(ValueError):
        ContentUnit("u1", UnitType.SECTION, 10, parent_id="u1")
    with pytest.raises(ValueError):
        ContentLength(-1, LengthUnit.WORDS)
    with pytest.raises(ValueError):
        StructuredData("graph")


def test_generated_timestamp_parses_as_utc() -> None:
    metadata = create_slim_metadata(0, "article", SOURCE_HASH, 10, [0], generated_at=GENERATED_AT)

    assert metadata.generated_timestamp.value.tzinfo is not None
    assert metadata.generated_timestamp.to_iso() == GENERATED_AT
