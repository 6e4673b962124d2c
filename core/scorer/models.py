#!/usr/bin/env python3
"""
Scoring Models - Data structures for profiles, opportunities and score results.

Records arriving from upstream systems may use camelCase (web clients) or
snake_case keys; the from_dict constructors accept both.
"""

import copy
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


ALGORITHM_CALCULATION = "v4.0-calculation"
ALGORITHM_LLM_ENHANCED = "v5.0-llm-enhanced"
ALGORITHM_LLM_FAST = "v5.0-llm-fast"
ALGORITHM_HYBRID = "v5.0-hybrid"
ALGORITHM_LLM_FALLBACK = "v4.0-fallback-from-llm"
ALGORITHM_HYBRID_FALLBACK = "v4.0-hybrid-fallback"

FALLBACK_ALGORITHM_VERSIONS = frozenset({ALGORITHM_LLM_FALLBACK, ALGORITHM_HYBRID_FALLBACK})


class ScoringMethod(str, Enum):
    CALCULATION = "calculation"
    GENERATIVE = "generative"
    HYBRID = "hybrid"

    @classmethod
    def parse(cls, value: Any, default: "ScoringMethod" = None) -> "ScoringMethod":
        """Parse a method name. ``llm`` is accepted as an alias of ``generative``."""
        if value is None or value == "":
            return default or cls.CALCULATION
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        if normalized == "llm":
            return cls.GENERATIVE
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown scoring method: {value!r}")


class ScoringMode(str, Enum):
    FAST = "fast"
    ADVANCED = "advanced"

    @classmethod
    def parse(cls, value: Any, default: "ScoringMode" = None) -> "ScoringMode":
        """Parse a mode name. ``enhanced`` is accepted as an alias of ``advanced``."""
        if value is None or value == "":
            return default or cls.FAST
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        if normalized == "enhanced":
            return cls.ADVANCED
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown scoring mode: {value!r}")


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present, non-None value among ``keys``."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _as_str_tuple(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,) if value.strip() else ()
    if isinstance(value, (list, tuple, set)):
        return tuple(str(v).strip() for v in value if v is not None and str(v).strip())
    return ()


def _as_float(value: Any) -> Optional[float]:
    """Coerce numbers and numeric strings like '$1,200,000' to float."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        cleaned = value.replace("$", "").replace(",", "").strip()
        try:
            parsed = float(cleaned)
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up, so 82.5 becomes 83.

    The nine-decimal pre-round absorbs float noise such as 0.7 * 75 landing
    just below 52.5.
    """
    return int(math.floor(round(value, 9) + 0.5))


def clamp_score(value: Any, fallback: float = 50.0) -> int:
    """Coerce any value to an integer score in [0, 100].

    Non-numeric, NaN and infinite values are replaced by ``fallback``.
    """
    number = _as_float(value)
    if number is None:
        number = fallback
    return round_half_up(max(0.0, min(100.0, number)))


@dataclass(frozen=True)
class Profile:
    """Contractor capability profile. Frozen so a scoring run cannot mutate it."""
    id: str
    organization_id: str = ""
    company_name: str = ""
    contact_email: str = ""
    primary_naics: Optional[str] = None
    secondary_naics: Tuple[str, ...] = ()
    certifications: Tuple[Dict[str, Any], ...] = ()
    set_asides: Tuple[str, ...] = ()
    past_performance: Dict[str, Any] = field(default_factory=dict)
    state: Optional[str] = None
    city: Optional[str] = None
    geographic_preferences: Dict[str, Any] = field(default_factory=dict)
    security_clearance: Optional[str] = None
    capabilities: Tuple[str, ...] = ()
    government_levels: Tuple[str, ...] = ()
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Profile":
        data = copy.deepcopy(data or {})
        certifications = _pick(data, "certifications", default=[])
        set_asides = _pick(data, "set_asides", "setAsides", default=[])
        # Legacy shape: {"certifications": [...], "setAsides": [...]}
        if isinstance(certifications, dict):
            set_asides = set_asides or certifications.get("setAsides") or certifications.get("set_asides") or []
            certifications = certifications.get("certifications") or []
        certs = tuple(
            c if isinstance(c, dict) else {"type": str(c)}
            for c in (certifications if isinstance(certifications, (list, tuple)) else [])
            if c
        )
        past_performance = _pick(data, "past_performance", "pastPerformance", default={})
        # Legacy shape: a bare list of contract records
        if isinstance(past_performance, list):
            past_performance = {"contracts": [c for c in past_performance if isinstance(c, dict)]}
        geo = _pick(data, "geographic_preferences", "geographicPreferences", default={})
        return cls(
            id=str(_pick(data, "id", default="")),
            organization_id=str(_pick(data, "organization_id", "organizationId", default="")),
            company_name=str(_pick(data, "company_name", "companyName", default="")),
            contact_email=str(_pick(data, "contact_email", "contactEmail", "email", default="")),
            primary_naics=_pick(data, "primary_naics", "primaryNaics"),
            secondary_naics=_as_str_tuple(_pick(data, "secondary_naics", "secondaryNaics")),
            certifications=certs,
            set_asides=_as_str_tuple(set_asides),
            past_performance=past_performance if isinstance(past_performance, dict) else {},
            state=_pick(data, "state"),
            city=_pick(data, "city"),
            geographic_preferences=geo if isinstance(geo, dict) else {},
            security_clearance=_pick(data, "security_clearance", "securityClearance"),
            capabilities=_as_str_tuple(_pick(data, "capabilities", "coreCompetencies", "core_competencies")),
            government_levels=_as_str_tuple(_pick(data, "government_levels", "governmentLevels")),
            updated_at=_pick(data, "updated_at", "updatedAt"),
        )

    def scoring_fields(self) -> Dict[str, Any]:
        """The subset of fields that can change a score."""
        return {
            "primary_naics": self.primary_naics,
            "secondary_naics": list(self.secondary_naics),
            "certifications": [dict(c) for c in self.certifications],
            "set_asides": list(self.set_asides),
            "past_performance": self.past_performance,
            "state": self.state,
            "city": self.city,
            "geographic_preferences": self.geographic_preferences,
            "security_clearance": self.security_clearance,
            "capabilities": list(self.capabilities),
            "government_levels": list(self.government_levels),
        }

    def prompt_view(self) -> Dict[str, Any]:
        """Compact representation used in generation prompts."""
        view = {"company_name": self.company_name}
        view.update(self.scoring_fields())
        return view


@dataclass(frozen=True)
class Opportunity:
    """Solicitation record. Read-only input to scoring."""
    id: str
    title: str = ""
    agency: Optional[str] = None
    naics_codes: Tuple[str, ...] = ()
    estimated_value: Optional[float] = None
    set_aside_type: Optional[str] = None
    required_certifications: Tuple[str, ...] = ()
    security_clearance_required: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None
    response_deadline: Optional[str] = None
    posted_date: Optional[str] = None
    description: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Opportunity":
        data = data or {}
        place = _pick(data, "place_of_performance", "placeOfPerformance", default={})
        if not isinstance(place, dict):
            place = {}
        naics = _pick(data, "naics_codes", "naicsCodes", default=[])
        if not naics and _pick(data, "naics", "naicsCode"):
            naics = [_pick(data, "naics", "naicsCode")]
        value = _pick(data, "estimated_value", "estimatedValue", "contract_value", "contractValue")
        if isinstance(value, dict):
            value = _pick(value, "preferred", "max", "min")
        agency = _pick(data, "agency")
        if isinstance(agency, dict):
            agency = agency.get("name")
        return cls(
            id=str(_pick(data, "id", default="")),
            title=str(_pick(data, "title", default="")),
            agency=agency,
            naics_codes=_as_str_tuple(naics),
            estimated_value=_as_float(value),
            set_aside_type=_pick(data, "set_aside_type", "setAsideType"),
            required_certifications=_as_str_tuple(
                _pick(data, "required_certifications", "requiredCertifications")
            ),
            security_clearance_required=_pick(
                data, "security_clearance_required", "securityClearanceRequired", "securityClearance"
            ),
            state=_pick(place, "state") or _pick(data, "performance_state", "performanceState", "state"),
            city=_pick(place, "city") or _pick(data, "performance_city", "performanceCity", "city"),
            response_deadline=_pick(data, "response_deadline", "responseDeadline", "deadline"),
            posted_date=_pick(data, "posted_date", "postedDate"),
            description=str(_pick(data, "description", default="")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "agency": self.agency,
            "naics_codes": list(self.naics_codes),
            "estimated_value": self.estimated_value,
            "set_aside_type": self.set_aside_type,
            "required_certifications": list(self.required_certifications),
            "security_clearance_required": self.security_clearance_required,
            "place_of_performance": {"state": self.state, "city": self.city},
            "response_deadline": self.response_deadline,
            "posted_date": self.posted_date,
            "description": self.description,
        }

    def prompt_view(self) -> Dict[str, Any]:
        view = self.to_dict()
        # Long solicitation text is trimmed to keep prompts small.
        view["description"] = self.description[:2000]
        return view


@dataclass
class ScoreRequest:
    """A request to score one opportunity for one profile.

    ``method`` and ``mode`` together fully determine the computation path.
    """
    opportunity_id: str
    organization_id: str
    user_id: Optional[str] = None
    profile_id: Optional[str] = None
    method: ScoringMethod = ScoringMethod.CALCULATION
    mode: ScoringMode = ScoringMode.FAST
    opportunity: Optional[Opportunity] = None
    save_results: bool = True

    def to_event_payload(self) -> Dict[str, Any]:
        return {
            "opportunity_id": self.opportunity_id,
            "organization_id": self.organization_id,
            "user_id": self.user_id,
            "profile_id": self.profile_id,
            "method": self.method.value,
            "mode": self.mode.value,
            "opportunity": self.opportunity.to_dict() if self.opportunity else None,
            "save_results": self.save_results,
        }

    @classmethod
    def from_event_payload(cls, payload: Dict[str, Any]) -> "ScoreRequest":
        inline = payload.get("opportunity")
        return cls(
            opportunity_id=str(payload["opportunity_id"]),
            organization_id=str(payload["organization_id"]),
            user_id=payload.get("user_id"),
            profile_id=payload.get("profile_id"),
            method=ScoringMethod.parse(payload.get("method")),
            mode=ScoringMode.parse(payload.get("mode")),
            opportunity=Opportunity.from_dict(inline) if inline else None,
            save_results=bool(payload.get("save_results", True)),
        )


@dataclass
class CategoryScore:
    """Score for a single factor or category, with SWOT-style rationale."""
    score: float
    weight: float
    contribution: float
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    opportunities: List[str] = field(default_factory=list)
    threats: List[str] = field(default_factory=list)
    details: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "weight": self.weight,
            "contribution": self.contribution,
            "strengths": list(self.strengths),
            "weaknesses": list(self.weaknesses),
            "opportunities": list(self.opportunities),
            "threats": list(self.threats),
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CategoryScore":
        return cls(
            score=float(data.get("score", 0.0)),
            weight=float(data.get("weight", 0.0)),
            contribution=float(data.get("contribution", 0.0)),
            strengths=list(data.get("strengths") or []),
            weaknesses=list(data.get("weaknesses") or []),
            opportunities=list(data.get("opportunities") or []),
            threats=list(data.get("threats") or []),
            details=str(data.get("details") or ""),
        )


@dataclass
class ScoreResult:
    """Final score for one (opportunity, profile) pair.

    ``overall_score`` and ``confidence`` are always coerced to integers in
    [0, 100], whatever the producing method handed in.
    """
    overall_score: int
    confidence: int
    algorithm_version: str
    categories: Dict[str, CategoryScore] = field(default_factory=dict)
    semantic_analysis: Optional[Dict[str, Any]] = None
    strategic_insights: Optional[Dict[str, Any]] = None
    recommendations: List[str] = field(default_factory=list)
    cost_units: float = 0.0
    processing_time_ms: int = 0
    scoring_method: str = ScoringMethod.CALCULATION.value
    explanation: Optional[str] = None
    win_probability: Optional[int] = None

    def __post_init__(self):
        self.overall_score = clamp_score(self.overall_score)
        self.confidence = clamp_score(self.confidence, fallback=75.0)
        cost = _as_float(self.cost_units)
        self.cost_units = cost if cost is not None and cost >= 0 else 0.0
        self.processing_time_ms = max(0, int(self.processing_time_ms or 0))

    @property
    def is_fallback(self) -> bool:
        return self.algorithm_version in FALLBACK_ALGORITHM_VERSIONS

    def factors(self) -> Dict[str, Dict[str, Any]]:
        return {name: category.to_dict() for name, category in self.categories.items()}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_score": self.overall_score,
            "confidence": self.confidence,
            "algorithm_version": self.algorithm_version,
            "categories": self.factors(),
            "semantic_analysis": self.semantic_analysis,
            "strategic_insights": self.strategic_insights,
            "recommendations": list(self.recommendations),
            "cost_units": self.cost_units,
            "processing_time_ms": self.processing_time_ms,
            "scoring_method": self.scoring_method,
            "explanation": self.explanation,
            "win_probability": self.win_probability,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScoreResult":
        return cls(
            overall_score=data.get("overall_score"),
            confidence=data.get("confidence"),
            algorithm_version=str(data.get("algorithm_version") or ""),
            categories={
                name: CategoryScore.from_dict(value)
                for name, value in (data.get("categories") or {}).items()
            },
            semantic_analysis=data.get("semantic_analysis"),
            strategic_insights=data.get("strategic_insights"),
            recommendations=list(data.get("recommendations") or []),
            cost_units=data.get("cost_units", 0.0),
            processing_time_ms=data.get("processing_time_ms", 0),
            scoring_method=str(data.get("scoring_method") or ScoringMethod.CALCULATION.value),
            explanation=data.get("explanation"),
            win_probability=data.get("win_probability"),
        )


@dataclass
class ScoreOutcome:
    """A resolved score plus where it came from."""
    result: ScoreResult
    from_cache: bool
    cache_key: str
    request: Optional[ScoreRequest] = None


@dataclass
class UsageEvent:
    """Billable usage record. One per fresh computation, never for cache hits."""
    organization_id: str
    quantity: int
    resource_type: str = "match_score_calculation"
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "organization_id": self.organization_id,
            "quantity": self.quantity,
            "resource_type": self.resource_type,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


@dataclass
class CacheEntry:
    """A cached ScoreResult with its lifecycle metadata."""
    key: str
    value: ScoreResult
    ttl_seconds: int
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_payload(self) -> Dict[str, Any]:
        return {
            "data": self.value.to_dict(),
            "cached_at": self.created_at.isoformat(),
            "ttl_seconds": self.ttl_seconds,
        }

    @classmethod
    def from_payload(cls, key: str, payload: Dict[str, Any]) -> "CacheEntry":
        cached_at = payload.get("cached_at")
        created_at = datetime.fromisoformat(cached_at) if cached_at else datetime.now(timezone.utc)
        return cls(
            key=key,
            value=ScoreResult.from_dict(payload.get("data") or {}),
            ttl_seconds=int(payload.get("ttl_seconds") or 0),
            created_at=created_at,
        )
