"""Knowledge data model and types.

Entities and relationships are owned by exactly one user. Confidence,
strength and tier are clamped on construction so every downstream consumer
can rely on their ranges.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .ontology import RELATIONSHIP_TYPES


def _now_utc() -> datetime:
    """Current UTC timestamp with timezone."""
    return datetime.now(timezone.utc)


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def normalize_name(name: str) -> str:
    """Normalize an entity name (lowercase, whitespace collapsed to underscores)."""
    return "_".join(str(name).lower().split())


def clamp_unit(value: float) -> float:
    """Clamp a score into [0.0, 1.0]."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if number != number:  # NaN
        return 0.0
    return max(0.0, min(1.0, number))


def clamp_tier(value: int) -> int:
    try:
        tier = int(value)
    except (TypeError, ValueError):
        return 3
    return max(1, min(3, tier))


@dataclass
class Entity:
    """A recognized domain concept instance."""

    name: str
    entity_type: str
    category: str
    context: str = ""
    confidence: float = 0.5
    tier: int = 3
    extraction_method: str = "unknown"
    user_id: str = ""
    created_at: datetime = field(default_factory=_now_utc)
    last_accessed: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.name = normalize_name(self.name)
        self.context = self.context or ""
        self.confidence = clamp_unit(self.confidence)
        self.tier = clamp_tier(self.tier)
        self.created_at = _ensure_utc(self.created_at)
        if self.last_accessed is not None:
            self.last_accessed = _ensure_utc(self.last_accessed)


@dataclass
class Relationship:
    """A directed, typed edge between two entity names.

    Endpoints are weak references: the named entities may have been pruned.
    """

    from_entity: str
    to_entity: str
    relationship_type: str
    strength: float = 0.5
    context: str = ""
    user_id: str = ""
    created_at: datetime = field(default_factory=_now_utc)
    observation_count: int = 1

    def __post_init__(self) -> None:
        if self.relationship_type not in RELATIONSHIP_TYPES:
            raise ValueError(f"Unknown relationship type: {self.relationship_type}")
        self.from_entity = normalize_name(self.from_entity)
        self.to_entity = normalize_name(self.to_entity)
        self.context = self.context or ""
        self.strength = clamp_unit(self.strength)
        self.created_at = _ensure_utc(self.created_at)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.from_entity, self.to_entity, self.relationship_type)


class ProfileFacts(BaseModel):
    """Structured business attributes supplied by the profile store."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    industry: Optional[str] = Field(default=None, alias="business_type")
    monthly_revenue: Optional[float] = None
    monthly_expenses: Optional[float] = None
    location: Optional[str] = None

    @field_validator("industry", "location", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("monthly_revenue", "monthly_expenses", mode="before")
    @classmethod
    def _positive_amount(cls, value: object) -> Optional[float]:
        if value is None or value == "":
            return None
        try:
            amount = float(str(value).replace(",", ""))
        except (TypeError, ValueError):
            return None
        return amount if amount > 0 else None

    def is_empty(self) -> bool:
        return not any(
            (self.industry, self.monthly_revenue, self.monthly_expenses, self.location)
        )

    @classmethod
    def coerce(cls, value: object) -> "ProfileFacts":
        """Build profile facts from a dict, model or None without raising."""
        if isinstance(value, ProfileFacts):
            return value
        if isinstance(value, dict):
            try:
                return cls.model_validate(value)
            except ValidationError:
                return cls()
        return cls()
