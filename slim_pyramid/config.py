"""Deployment configuration for serving level payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Dict, Mapping, Optional

from .schema import DEFAULT_REGISTRY, LevelSchemaRegistry
from .validation import ValidatorConfig


_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be one of 0/1/true/false, got {raw!r}")


def _parse_ttl_overrides(name: str, raw: str) -> Dict[int, int]:
    overrides: Dict[int, int] = {}
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        level_text, sep, seconds_text = item.partition("=")
        if not sep:
            raise ValueError(f"{name} entries must look like level=seconds, got {item!r}")
        try:
            level, seconds = int(level_text), int(seconds_text)
        except ValueError as exc:
            raise ValueError(f"{name} entries must be integers, got {item!r}") from exc
        if seconds < 0:
            raise ValueError(f"{name} seconds cannot be negative, got {item!r}")
        overrides[level] = seconds
    return overrides


@dataclass(frozen=True)
class PyramidConfig:
    """Validated settings for the engine and HTTP surface."""

    content_dir: Optional[Path] = None
    strict_references: bool = False
    ttl_overrides: Mapping[int, int] = field(default_factory=dict)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "PyramidConfig":
        source: Mapping[str, str] = os.environ if environ is None else environ

        content_dir_raw = source.get("SLIM_PYRAMID_CONTENT_DIR", "").strip()
        strict = _parse_bool(
            "SLIM_PYRAMID_STRICT_REFERENCES",
            source.get("SLIM_PYRAMID_STRICT_REFERENCES", "false"),
        )
        ttl_overrides = _parse_ttl_overrides(
            "SLIM_PYRAMID_TTL_OVERRIDES",
            source.get("SLIM_PYRAMID_TTL_OVERRIDES", ""),
        )

        content_dir = Path(content_dir_raw) if content_dir_raw else None
        if content_dir is not None and not content_dir.is_dir():
            raise ValueError(f"SLIM_PYRAMID_CONTENT_DIR is not a directory: {content_dir}")

        # Reject unknown levels here rather than at first request.
        DEFAULT_REGISTRY.with_overrides(ttls=ttl_overrides)

        return cls(
            content_dir=content_dir,
            strict_references=strict,
            ttl_overrides=ttl_overrides,
        )

    def build_registry(self, base: Optional[LevelSchemaRegistry] = None) -> LevelSchemaRegistry:
        base = base or DEFAULT_REGISTRY
        if not self.ttl_overrides:
            return base
        return base.with_overrides(ttls=self.ttl_overrides)

    def validator_config(self) -> ValidatorConfig:
        return ValidatorConfig(strict_references=self.strict_references)
