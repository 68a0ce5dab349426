"""
rules.py — The eligibility rule library.

Each rule is a pure function (profile, tender) -> RuleResult. Rules never
look at each other's results and never raise: missing or garbage numbers
degrade to 0 through safe_number(), and the explanation/value fields still
show exactly what was compared, so a reviewer can see why a rule failed.

Rules are registered in an ordered list. The matcher walks that list and
runs every auto-selected rule whose requirement field is set on the tender,
so adding a rule (bid capacity, solvency, machinery...) means writing the
function and registering it here. matcher.py does not change.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from tender_eligibility.config import config
from tender_eligibility.schemas import (
    ContractorProfile,
    RuleCategory,
    RuleResult,
    RuleValue,
    TenderRequirements,
    safe_number,
)

logger = logging.getLogger(__name__)

RuleFn = Callable[[ContractorProfile, TenderRequirements], RuleResult]


@dataclass(frozen=True)
class Rule:
    """A registered rule plus the metadata the matcher selects on."""
    rule_id: str
    category: RuleCategory
    requirement_field: str
    evaluate: RuleFn
    auto_select: bool = True

    def applies_to(self, tender: TenderRequirements) -> bool:
        return self.auto_select and bool(getattr(tender, self.requirement_field, None))


def _fmt(value: float) -> str:
    """5000000.0 -> "5000000", 2.5 -> "2.5". Keeps explanations readable."""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def check_turnover(profile: ContractorProfile, tender: TenderRequirements) -> RuleResult:
    """
    Average turnover of the first N history entries vs the tender minimum.

    The entries are used in the order supplied. We deliberately do NOT sort
    by year here: the history is "most recent first" by convention only,
    and re-sorting would change verdicts already issued.
    """
    window = profile.turnover_history[: config.matcher.turnover_window]
    if window:
        actual = sum(entry.amount for entry in window) / len(window)
    else:
        actual = 0.0
    required = safe_number(tender.turnover_req)

    met = actual >= required
    if met:
        explanation = f"Average turnover ({_fmt(actual)}) exceeds requirement ({_fmt(required)})"
    else:
        explanation = f"Average turnover ({_fmt(actual)}) is less than requirement ({_fmt(required)})"

    return RuleResult(
        rule_id="turnover",
        category="FINANCIAL",
        met=met,
        confidence=1.0,
        explanation=explanation,
        value=RuleValue(required=required, actual=actual),
    )


def check_experience_years(profile: ContractorProfile, tender: TenderRequirements) -> RuleResult:
    """Years in business vs the tender minimum. Absent on either side is 0."""
    actual = safe_number(profile.years_of_experience)
    required = safe_number(tender.experience_req)
    met = actual >= required

    if met:
        explanation = (
            f"Experience ({_fmt(actual)} years) meets requirement ({_fmt(required)} years)"
        )
    else:
        explanation = (
            f"Experience ({_fmt(actual)} years) is less than requirement ({_fmt(required)} years)"
        )

    return RuleResult(
        rule_id="experience_years",
        category="EXPERIENCE",
        met=met,
        confidence=1.0,
        explanation=explanation,
        value=RuleValue(required=required, actual=actual),
    )


def check_net_worth(profile: ContractorProfile, tender: TenderRequirements) -> RuleResult:
    """
    Placeholder: always passes at 0.5 confidence.

    The extraction service does not map net worth criteria yet (they sit
    inside financialCriteria free text), so the requirement is pinned to 0
    and the rule is registered with auto_select=False. Wire it in once
    netWorthReq is actually populated.
    """
    actual = safe_number(profile.net_worth)
    required = 0

    return RuleResult(
        rule_id="net_worth",
        category="FINANCIAL",
        met=True,
        confidence=0.5,
        explanation="Net worth check pending detailed extraction mapping",
        value=RuleValue(required=required, actual=actual),
    )


# Evaluation order == display order in the verdict table.
RULES: List[Rule] = [
    Rule("turnover", "FINANCIAL", "turnover_req", check_turnover),
    Rule("experience_years", "EXPERIENCE", "experience_req", check_experience_years),
    Rule("net_worth", "FINANCIAL", "net_worth_req", check_net_worth, auto_select=False),
]


def register_rule(rule: Rule) -> Rule:
    """Append a rule to the registry. Rule ids must be unique."""
    if get_rule(rule.rule_id) is not None:
        raise ValueError(f"Rule '{rule.rule_id}' is already registered")
    RULES.append(rule)
    logger.info("Registered rule '%s' (%s, field=%s)",
                rule.rule_id, rule.category, rule.requirement_field)
    return rule


def get_rule(rule_id: str) -> Optional[Rule]:
    for rule in RULES:
        if rule.rule_id == rule_id:
            return rule
    return None
