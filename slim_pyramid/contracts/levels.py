"""
Level Contracts

Wire-level vocabulary of the progressive-disclosure protocol: level
numbers, closed enumerations, the metadata block attached to every
payload, the client selection request, and the record types that fill
payload fields.

WIRE CONTRACT:
==============
Field names produced by ``to_dict()`` are exact and case-sensitive.
Other implementations must match them byte-for-byte.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Final, Mapping, Optional, Tuple, Union

from .base import Timestamp


# =============================================================================
# PROTOCOL CONSTANTS
# =============================================================================

PROTOCOL_VERSION: Final[str] = "2.1"
METADATA_KEY: Final[str] = "_slim"

MIN_LEVEL: Final[int] = 0
MAX_LEVEL: Final[int] = 9
ALL_LEVELS: Final[Tuple[int, ...]] = tuple(range(MIN_LEVEL, MAX_LEVEL + 1))


def is_known_level(level: object) -> bool:
    """True for an int in [0, 9]. Booleans are not levels."""
    return isinstance(level, int) and not isinstance(level, bool) and MIN_LEVEL <= level <= MAX_LEVEL


# =============================================================================
# ENUMS (Closed World)
# =============================================================================

class ContentType(Enum):
    """Content type classification."""
    # Documents
    ARTICLE = "article"
    DOCUMENTATION = "documentation"
    REPORT = "report"
    EMAIL = "email"
    # Structured
    CONVERSATION = "conversation"
    CODE = "code"
    DECISION = "decision"
    DATA = "data"
    # Media
    VIDEO = "video"
    IMAGE = "image"
    AUDIO = "audio"
    # Other
    MIXED = "mixed"
    UNKNOWN = "unknown"


class Capability(Enum):
    """Capabilities that content supports."""
    QUERY = "query"            # Can answer questions
    SUMMARIZE = "summarize"    # Can be summarized
    EXTRACT = "extract"        # Contains extractable data
    NAVIGATE = "navigate"      # Has navigable structure
    CITE = "cite"              # Can be cited/quoted
    COMPARE = "compare"        # Can be compared with others
    ANALYZE = "analyze"        # Supports deep analysis
    EXECUTE = "execute"        # Contains executable content


class Preference(Enum):
    """Qualitative level preference hint."""
    MINIMAL = "minimal"
    BALANCED = "balanced"
    COMPREHENSIVE = "comprehensive"


class LengthUnit(Enum):
    TOKENS = "tokens"
    WORDS = "words"
    CHARACTERS = "characters"
    LINES = "lines"
    MESSAGES = "messages"
    PAGES = "pages"


class EntityType(Enum):
    PERSON = "person"
    ORGANIZATION = "organization"
    TECHNOLOGY = "technology"
    CONCEPT = "concept"
    PLACE = "place"
    DATE = "date"


class UnitType(Enum):
    SECTION = "section"
    MESSAGE = "message"
    FUNCTION = "function"
    CLASS = "class"
    TABLE = "table"
    FIGURE = "figure"
    QUOTE = "quote"


class Importance(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SchemaType(Enum):
    TABLE = "table"
    LIST = "list"
    INTERFACE = "interface"
    ENUM = "enum"


class MediaType(Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"


def _drop_none(values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


# =============================================================================
# METADATA (attached to every payload)
# =============================================================================

@dataclass(frozen=True)
class SlimMetadata:
    """
    Metadata block carried under ``_slim`` in every payload.

    INVARIANTS:
    ===========
    - ``level`` appears in ``available_levels``
    - ``source_hash`` is identical across all levels of one content item
    """
    version: str
    level: int
    content_type: ContentType
    generated_at: str
    source_hash: str
    token_count: int
    available_levels: Tuple[int, ...]
    ttl_seconds: Optional[int] = None

    def __post_init__(self):
        if not is_known_level(self.level):
            raise ValueError(f"level must be an integer in [{MIN_LEVEL}, {MAX_LEVEL}], got {self.level!r}")
        if not self.source_hash or not isinstance(self.source_hash, str):
            raise ValueError("source_hash must be a non-empty string")
        if self.token_count < 0:
            raise ValueError("token_count cannot be negative")
        levels = tuple(sorted(set(self.available_levels)))
        if not all(is_known_level(l) for l in levels):
            raise ValueError(f"available_levels contains unknown levels: {self.available_levels!r}")
        if self.level not in levels:
            raise ValueError(f"level {self.level} is not listed in available_levels {levels}")
        object.__setattr__(self, 'available_levels', levels)
        if isinstance(self.content_type, str):
            object.__setattr__(self, 'content_type', ContentType(self.content_type))
        if self.ttl_seconds is not None and self.ttl_seconds < 0:
            raise ValueError("ttl_seconds cannot be negative")

    @property
    def generated_timestamp(self) -> Timestamp:
        return Timestamp.from_iso(self.generated_at)

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            'version': self.version,
            'level': self.level,
            'contentType': self.content_type.value,
            'generatedAt': self.generated_at,
            'sourceHash': self.source_hash,
            'tokenCount': self.token_count,
            'availableLevels': list(self.available_levels),
            'ttlSeconds': self.ttl_seconds,
        })

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> SlimMetadata:
        """Parse a wire metadata block. Raises ValueError on contract violations."""
        try:
            return cls(
                version=str(data['version']),
                level=data['level'],
                content_type=ContentType(data['contentType']),
                generated_at=str(data['generatedAt']),
                source_hash=data['sourceHash'],
                token_count=int(data['tokenCount']),
                available_levels=tuple(data['availableLevels']),
                ttl_seconds=data.get('ttlSeconds'),
            )
        except KeyError as exc:
            raise ValueError(f"metadata block is missing field {exc.args[0]!r}") from exc
        except TypeError as exc:
            raise ValueError(f"malformed metadata block: {exc}") from exc


# =============================================================================
# LEVEL REQUEST (client selection criteria)
# =============================================================================

@dataclass(frozen=True)
class LevelRequest:
    """
    Client-supplied selection criteria.

    All fields are optional. Precedence: explicit ``level``, then
    ``max_level`` ceiling, then ``token_budget``, then ``prefer``.
    """
    level: Optional[int] = None
    max_level: Optional[int] = None
    token_budget: Optional[int] = None
    prefer: Optional[Preference] = None

    def __post_init__(self):
        for name in ('level', 'max_level', 'token_budget'):
            value = getattr(self, name)
            if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
                raise ValueError(f"{name} must be an integer, got {value!r}")
        if isinstance(self.prefer, str):
            object.__setattr__(self, 'prefer', Preference(self.prefer))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> LevelRequest:
        """Build from wire names (``level``, ``maxLevel``, ``tokenBudget``, ``prefer``)."""
        return cls(
            level=data.get('level'),
            max_level=data.get('maxLevel'),
            token_budget=data.get('tokenBudget'),
            prefer=data.get('prefer'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            'level': self.level,
            'maxLevel': self.max_level,
            'tokenBudget': self.token_budget,
            'prefer': self.prefer.value if self.prefer else None,
        })


# =============================================================================
# FIELD RECORDS (values that fill payload fields)
# =============================================================================

@dataclass(frozen=True)
class ContentLength:
    """Content length with unit (L1 ``length``)."""
    value: int
    unit: LengthUnit

    def __post_init__(self):
        if self.value < 0:
            raise ValueError("length value cannot be negative")

    def to_dict(self) -> Dict[str, Any]:
        return {'value': self.value, 'unit': self.unit.value}


@dataclass(frozen=True)
class SlimEntity:
    """Named entity extracted from content (L3 ``entities``)."""
    name: str
    entity_type: EntityType
    mentions: int

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'type': self.entity_type.value, 'mentions': self.mentions}


@dataclass(frozen=True)
class OutlineEntry:
    """Outline entry for navigation (L2 ``outline``). Nested via ``children``."""
    id: str
    title: str
    level: int
    children: Tuple[OutlineEntry, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'id': self.id, 'title': self.title, 'level': self.level}
        if self.children:
            data['children'] = [child.to_dict() for child in self.children]
        return data


@dataclass(frozen=True)
class Phase:
    """Phase in a conversation or timeline (L2 ``phases``)."""
    name: str
    range: str

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'range': self.range}


@dataclass(frozen=True)
class ContentUnit:
    """
    Reference to an addressable sub-part of the content (L3 ``units``).

    ``parent_id`` links units into a forest; resolution is checked by
    the validator's advisory reference check, not here.
    """
    id: str
    unit_type: UnitType
    token_estimate: int
    parent_id: Optional[str] = None
    preview: Optional[str] = None

    def __post_init__(self):
        if not self.id:
            raise ValueError("unit id must be a non-empty string")
        if self.parent_id == self.id:
            raise ValueError(f"unit {self.id!r} cannot be its own parent")
        if self.token_estimate < 0:
            raise ValueError("token_estimate cannot be negative")

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            'id': self.id,
            'type': self.unit_type.value,
            'parentId': self.parent_id,
            'tokenEstimate': self.token_estimate,
            'preview': self.preview,
        })


@dataclass(frozen=True)
class KeyPoint:
    """Key point with importance (L4 ``keyPoints``)."""
    point: str
    unit_id: str
    importance: Importance

    def to_dict(self) -> Dict[str, Any]:
        return {'point': self.point, 'unitId': self.unit_id, 'importance': self.importance.value}


@dataclass(frozen=True)
class TableSchema:
    columns: Tuple[str, ...]
    row_count: int
    sample_row: Optional[Tuple[Union[str, int, float, None], ...]] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            'columns': list(self.columns),
            'rowCount': self.row_count,
            'sampleRow': list(self.sample_row) if self.sample_row is not None else None,
        })


@dataclass(frozen=True)
class ListSchema:
    item_count: int
    ordered: bool
    sample_items: Optional[Tuple[str, ...]] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            'itemCount': self.item_count,
            'ordered': self.ordered,
            'sampleItems': list(self.sample_items) if self.sample_items is not None else None,
        })


@dataclass(frozen=True)
class CodeSchema:
    language: str
    exports: Tuple[str, ...]
    signature: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            'language': self.language,
            'exports': list(self.exports),
            'signature': self.signature,
        })


@dataclass(frozen=True)
class SchemaDefinition:
    """Schema description of structured data (L6 ``schemas``)."""
    id: str
    schema_type: SchemaType
    definition: Union[TableSchema, ListSchema, CodeSchema]
    title: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            'id': self.id,
            'type': self.schema_type.value,
            'title': self.title,
            'definition': self.definition.to_dict(),
        })


@dataclass(frozen=True)
class StructuredData:
    """
    Complete structured data (L7 ``data`` values).
    Exactly one of ``rows``/``items``/``source`` matches ``kind``.
    """
    kind: str  # "table" | "list" | "code"
    rows: Tuple[Tuple[Union[str, int, float, bool, None], ...], ...] = ()
    items: Tuple[str, ...] = ()
    source: str = ""

    def __post_init__(self):
        if self.kind not in ('table', 'list', 'code'):
            raise ValueError(f"unsupported structured data kind: {self.kind!r}")

    def to_dict(self) -> Dict[str, Any]:
        if self.kind == 'table':
            return {'type': 'table', 'rows': [list(row) for row in self.rows]}
        if self.kind == 'list':
            return {'type': 'list', 'items': list(self.items)}
        return {'type': 'code', 'source': self.source}


@dataclass(frozen=True)
class Dimensions:
    width: int
    height: int

    def to_dict(self) -> Dict[str, Any]:
        return {'width': self.width, 'height': self.height}


@dataclass(frozen=True)
class MediaItem:
    """Media item metadata (L8 ``media``)."""
    id: str
    media_type: MediaType
    title: Optional[str] = None
    alt: Optional[str] = None
    mime_type: Optional[str] = None
    dimensions: Optional[Dimensions] = None
    duration: Optional[float] = None
    unit_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            'id': self.id,
            'type': self.media_type.value,
            'title': self.title,
            'alt': self.alt,
            'mimeType': self.mime_type,
            'dimensions': self.dimensions.to_dict() if self.dimensions else None,
            'duration': self.duration,
            'unitId': self.unit_id,
        })


@dataclass(frozen=True)
class MediaDescription:
    """Generated media description (L9 ``mediaDescriptions`` values)."""
    description: str
    extracted_text: Optional[str] = None
    objects: Optional[Tuple[str, ...]] = None
    sentiment: Optional[str] = None
    transcript: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            'description': self.description,
            'extractedText': self.extracted_text,
            'objects': list(self.objects) if self.objects is not None else None,
            'sentiment': self.sentiment,
            'transcript': self.transcript,
        })
