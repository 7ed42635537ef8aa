"""
Slim Pyramid

Progressive-disclosure content representation: a content item is
pre-rendered into cumulative levels L0-L9 of increasing detail, and a
consumer requests only the level it needs.

LAYERS:
=======
- schema:      per-level field requirements and token budgets
- validation:  does a payload satisfy a level's contract
- selection:   which available level to serve for a request
- engine:      certified publication and serving of level families
"""

from .contracts import (
    ALL_LEVELS, PROTOCOL_VERSION, ContentType, LevelRequest, Preference, SlimMetadata,
)
from .metadata import build_payload, build_pyramid, compute_source_hash, create_slim_metadata
from .negotiation import SLIM_MIME_TYPE, generate_content_type, parse_accept_header
from .schema import DEFAULT_REGISTRY, LevelSchemaRegistry, budget_for, fields_for
from .selection import LevelSelector, select_level
from .validation import PayloadValidator, conforms_to, highest_level

__version__ = "0.1.0"

__all__ = [
    "ALL_LEVELS", "ContentType", "DEFAULT_REGISTRY", "LevelRequest", "LevelSchemaRegistry",
    "LevelSelector", "PROTOCOL_VERSION", "PayloadValidator", "Preference", "SLIM_MIME_TYPE",
    "SlimMetadata", "budget_for", "build_payload", "build_pyramid", "compute_source_hash",
    "conforms_to", "create_slim_metadata", "fields_for", "generate_content_type",
    "highest_level", "parse_accept_header", "select_level",
]
