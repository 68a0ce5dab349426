"""
schemas.py — Pydantic v2 models for the eligibility contract.

Profiles come out of the profile editor and tender requirements come out of
the extraction service. Both are stored as camelCase JSON, so every model here
accepts camelCase keys (and snake_case, for Python callers) and ignores
anything it does not know about.

Coercion happens HERE and only here. The extraction service is supposed to
send turnoverReq as a number but we have seen "5000000", "50,00,000" and
"NOT_FOUND" in the wild. Anything that must be a number goes through
safe_number(): parse as float, fall back to 0.0, never raise. Rules downstream
can then trust the types they receive.
"""

from __future__ import annotations

import math
import uuid
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

RuleCategory = Literal["FINANCIAL", "TECHNICAL", "DOCUMENT", "EXPERIENCE"]
VerdictStatus = Literal["ELIGIBLE", "BORDERLINE", "INELIGIBLE"]


def safe_number(value: Any) -> float:
    """
    Parse anything into a float, defaulting to 0.0.

    Booleans are rejected on purpose (float(True) is 1.0, which would
    quietly turn a broken "turnoverReq": true into a requirement of 1 rupee).
    NaN is treated as unparsable because every comparison against it is
    False and the rule would fail without a visible reason. Integers too
    large for a float (10**400) overflow and also come back as 0.0.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    if math.isnan(number):
        return 0.0
    return number


def _optional_number(value: Any) -> Optional[float]:
    if value is None:
        return None
    return safe_number(value)


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


_AUDITED_STRINGS = {"true": True, "yes": True, "false": False, "no": False}


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


class _ContractModel(BaseModel):
    """Base for everything that crosses the storage/extraction boundary."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class TurnoverEntry(_ContractModel):
    """One financial year of audited (or claimed) turnover, in INR."""
    year: int = 0
    amount: float = 0.0
    audited: Optional[bool] = None

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, v: Any) -> float:
        return safe_number(v)

    @field_validator("year", mode="before")
    @classmethod
    def _coerce_year(cls, v: Any) -> int:
        year = safe_number(v)
        if not math.isfinite(year):
            return 0
        return int(year)

    @field_validator("audited", mode="before")
    @classmethod
    def _coerce_audited(cls, v: Any) -> Optional[bool]:
        # Descriptive only. Anything that is not clearly yes/no is unknown.
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            return _AUDITED_STRINGS.get(v.strip().lower())
        if v in (0, 1):
            return bool(v)
        return None


class ContractorProfile(_ContractModel):
    """
    The contractor as the rules see it.

    turnover_history is kept in the order the producer supplied it. The
    profile editor appends rows in whatever order the user types them, so
    "most recent first" is a convention, not a guarantee.
    """
    company_name: Optional[str] = None
    category: Optional[str] = None
    gst_number: Optional[str] = None
    pan_number: Optional[str] = None
    specializations: List[Any] = Field(default_factory=list)
    turnover_history: List[TurnoverEntry] = Field(default_factory=list)
    years_of_experience: Optional[float] = None
    net_worth: Optional[float] = None
    past_projects: List[Any] = Field(default_factory=list)
    licenses: List[Any] = Field(default_factory=list)
    certificates: List[Any] = Field(default_factory=list)

    @field_validator("turnover_history", mode="before")
    @classmethod
    def _tolerate_bad_history(cls, v: Any) -> List[Any]:
        # Non-mapping rows (a bare number, a string) are dropped rather than
        # failing the whole profile.
        return [
            row for row in _as_list(v)
            if isinstance(row, (Mapping, TurnoverEntry))
        ]

    @field_validator("years_of_experience", "net_worth", mode="before")
    @classmethod
    def _coerce_numbers(cls, v: Any) -> Optional[float]:
        return _optional_number(v)

    @field_validator("company_name", "category", "gst_number", "pan_number", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> Optional[str]:
        return _optional_text(v)

    @field_validator("specializations", "past_projects", "licenses", "certificates", mode="before")
    @classmethod
    def _coerce_lists(cls, v: Any) -> List[Any]:
        return _as_list(v)


class TenderRequirements(_ContractModel):
    """
    Eligibility thresholds extracted from a tender.

    A requirement that is None (or coerced to 0) means "not applicable",
    never "requirement of zero". The matcher only runs rules whose field is
    set.
    """
    tender_number: Optional[str] = None
    issuing_authority: Optional[str] = None
    project_value: Optional[float] = None
    emd_amount: Optional[float] = None
    turnover_req: Optional[float] = None
    experience_req: Optional[float] = None
    net_worth_req: Optional[float] = None
    required_documents: List[Any] = Field(default_factory=list)

    @field_validator(
        "project_value", "emd_amount",
        "turnover_req", "experience_req", "net_worth_req",
        mode="before",
    )
    @classmethod
    def _coerce_numbers(cls, v: Any) -> Optional[float]:
        return _optional_number(v)

    @field_validator("tender_number", "issuing_authority", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> Optional[str]:
        return _optional_text(v)

    @field_validator("required_documents", mode="before")
    @classmethod
    def _coerce_lists(cls, v: Any) -> List[Any]:
        return _as_list(v)


class RuleValue(_ContractModel):
    """The exact values a rule compared, kept for audit and display."""
    required: Any = None
    actual: Any = None


class RuleResult(_ContractModel):
    """Outcome of one eligibility rule."""
    rule_id: str
    category: RuleCategory
    met: bool
    confidence: float = Field(..., ge=0.0, le=1.0)
    explanation: str
    value: RuleValue = Field(default_factory=RuleValue)


class MatchResult(_ContractModel):
    """Full matcher response. rule_results are in evaluation order."""
    rule_results: List[RuleResult] = Field(default_factory=list)
    overall_verdict: VerdictStatus
    confidence_score: float = Field(..., ge=0.0, le=1.0)


class Remedy(_ContractModel):
    """Something the contractor can do about a failed criterion."""
    criterion: str
    suggestion: str


class Explanation(_ContractModel):
    """Narrative produced by the explainer LLM."""
    overall_explanation: str
    remedies: List[Remedy] = Field(default_factory=list)
    detailed_reasoning: str = ""

    @field_validator("remedies", mode="before")
    @classmethod
    def _wrap_plain_remedies(cls, v: Any) -> List[Any]:
        # The model sometimes returns remedies as a list of plain strings.
        return [
            {"criterion": "General", "suggestion": item} if isinstance(item, str) else item
            for item in _as_list(v)
        ]


class Verdict(_ContractModel):
    """
    The persisted outcome of one profile-vs-tender match.

    overall_verdict, confidence_score and clause_results come from the
    deterministic matcher. The narrative fields come from the explainer and
    may be the fixed fallback text.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    tender_id: Optional[str] = None
    profile_id: Optional[str] = None
    overall_verdict: VerdictStatus
    confidence_score: float = Field(..., ge=0.0, le=1.0)
    overall_explanation: str
    clause_results: List[RuleResult] = Field(default_factory=list)
    financial_match: Dict[str, Any] = Field(default_factory=dict)
    technical_match: Dict[str, Any] = Field(default_factory=dict)
    document_gaps: List[Remedy] = Field(default_factory=list)
    rules_version: str = "1.0"
    ai_model: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
