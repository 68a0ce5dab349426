"""
matcher.py — Rule selection and verdict aggregation.

The matcher is a single-pass classifier:

  1. Pick every registered rule whose requirement field is set on the tender.
  2. Run them in registry order.
  3. ELIGIBLE if everything passed with mean confidence >= threshold,
     BORDERLINE if everything passed below it, INELIGIBLE if anything failed.

Any failing rule is disqualifying. We discussed treating DOCUMENT failures
as BORDERLINE (a missing certificate can usually be obtained before the bid
deadline) but there are no DOCUMENT rules yet, so the simple policy stays.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Iterable, List, Optional, Sequence, Union

from tender_eligibility.config import config
from tender_eligibility.rules import RULES, Rule
from tender_eligibility.schemas import (
    ContractorProfile,
    MatchResult,
    RuleResult,
    TenderRequirements,
)

logger = logging.getLogger(__name__)

ProfileInput = Union[ContractorProfile, Mapping]
TenderInput = Union[TenderRequirements, Mapping]


class MatchPreconditionError(ValueError):
    """Raised when the matcher is called without a profile or a tender."""


def match_profile_to_tender(
    profile: Optional[ProfileInput],
    tender: Optional[TenderInput],
    rules: Optional[Sequence[Rule]] = None,
) -> MatchResult:
    """
    Evaluate a contractor profile against a tender's requirements.

    Both inputs may be models or raw mappings straight from storage. Raw
    mappings are validated (and coerced) through the schemas first. The
    only thing that raises is a missing input: guessing a verdict for a
    profile we never loaded would be worse than failing.
    """
    profile_model = coerce_profile(profile)
    tender_model = coerce_tender(tender)

    registry = RULES if rules is None else rules
    rule_results: List[RuleResult] = []

    for rule in registry:
        if not rule.applies_to(tender_model):
            continue
        result = rule.evaluate(profile_model, tender_model)
        logger.debug(
            "Rule %-18s met=%s conf=%.2f | %s",
            result.rule_id, result.met, result.confidence, result.explanation,
        )
        rule_results.append(result)

    match = determine_verdict(rule_results)
    logger.info(
        "Match for %s vs %s: %s (confidence=%.2f, %d rules)",
        profile_model.company_name or "<unnamed profile>",
        tender_model.tender_number or "<unnumbered tender>",
        match.overall_verdict, match.confidence_score, len(rule_results),
    )
    return match


def determine_verdict(rule_results: Iterable[RuleResult]) -> MatchResult:
    """
    Aggregate rule results into the overall verdict.

    With no results, all_met is vacuously true and the confidence is
    config.matcher.empty_rule_confidence (0.0 by default), which makes a
    tender with no extracted criteria BORDERLINE rather than ELIGIBLE.
    """
    results = list(rule_results)
    all_met = all(r.met for r in results)

    if results:
        avg_confidence = sum(r.confidence for r in results) / len(results)
    else:
        avg_confidence = config.matcher.empty_rule_confidence

    if not all_met:
        verdict = "INELIGIBLE"
    elif avg_confidence >= config.matcher.eligible_threshold:
        verdict = "ELIGIBLE"
    else:
        verdict = "BORDERLINE"

    return MatchResult(
        rule_results=results,
        overall_verdict=verdict,
        confidence_score=avg_confidence,
    )


def coerce_profile(profile: Any) -> ContractorProfile:
    if profile is None:
        raise MatchPreconditionError("Cannot match without a contractor profile")
    if isinstance(profile, ContractorProfile):
        return profile
    if isinstance(profile, Mapping):
        return ContractorProfile.model_validate(dict(profile))
    raise MatchPreconditionError(
        f"Contractor profile must be a mapping or ContractorProfile, got {type(profile).__name__}"
    )


def coerce_tender(tender: Any) -> TenderRequirements:
    if tender is None:
        raise MatchPreconditionError("Cannot match without tender requirements")
    if isinstance(tender, TenderRequirements):
        return tender
    if isinstance(tender, Mapping):
        return TenderRequirements.model_validate(dict(tender))
    raise MatchPreconditionError(
        f"Tender requirements must be a mapping or TenderRequirements, got {type(tender).__name__}"
    )
