"""
config.py — Central configuration for TenderEligibility.

Every threshold the matcher and the explainer depend on lives here. The
verdict boundary (0.8) used to be a literal inside the matcher and a second
copy of it inside the dashboard badge logic; the two drifted once and we
showed "ELIGIBLE" badges on BORDERLINE verdicts for a week. One place now.

Most values can be overridden from the environment so staging can run
with a different empty-rule policy without a code change.
"""

from dataclasses import dataclass, field
import os
import logging

logger = logging.getLogger(__name__)


@dataclass
class MatcherConfig:
    """
    Rule selection and verdict aggregation settings.

    eligible_threshold: minimum mean rule confidence for ELIGIBLE when every
    rule passes. Anything lower with all rules passing is BORDERLINE.

    turnover_window: how many turnoverHistory entries the turnover rule
    averages. Indian government tenders almost always ask for "average
    annual turnover of the last 3 financial years".

    empty_rule_confidence: the confidence reported when no rule applies
    (tender extraction found neither turnover nor experience criteria).
    0.0 routes those matches to BORDERLINE so somebody reads the tender.
    """
    eligible_threshold: float = 0.8
    turnover_window: int = 3
    empty_rule_confidence: float = float(os.getenv("EMPTY_RULE_CONFIDENCE", "0.0"))
    rules_version: str = "1.0"


@dataclass
class LLMConfig:
    """
    Explainer LLM settings via llama-cpp-python.

    Same Q4_K_M Mistral build the extraction side uses. The explanation
    is short (a paragraph plus a few remedies) so max_tokens is much lower
    than for requirement extraction.
    """
    model_path: str = os.getenv(
        "LLM_MODEL_PATH",
        "models/mistral-7b-instruct-v0.2.Q4_K_M.gguf",
    )
    model_name: str = os.getenv("LLM_MODEL_NAME", "mistral-7b-instruct-v0.2")
    n_ctx: int = 4096
    max_tokens: int = 1024
    # Slightly warmer than extraction, the output is prose.
    temperature: float = 0.2
    n_threads: int = 0  # 0 = auto-detect
    max_retries: int = 3
    retry_base_delay: float = 2.0


@dataclass
class Config:
    """Top-level config. Build it once via the module-level singleton."""
    matcher: MatcherConfig = field(default_factory=MatcherConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)

    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    def __post_init__(self):
        """Fail fast on nonsense thresholds instead of producing verdicts
        nobody can explain."""
        if not 0 <= self.matcher.eligible_threshold <= 1:
            raise ValueError(
                f"Eligible threshold must be [0,1], got {self.matcher.eligible_threshold}"
            )
        if not 0 <= self.matcher.empty_rule_confidence <= 1:
            raise ValueError(
                f"Empty-rule confidence must be [0,1], got {self.matcher.empty_rule_confidence}"
            )
        if self.matcher.turnover_window < 1:
            raise ValueError(
                f"Turnover window must be >= 1, got {self.matcher.turnover_window}"
            )

        if self.matcher.empty_rule_confidence >= self.matcher.eligible_threshold:
            logger.warning(
                "Empty-rule confidence %.2f is at or above the eligible threshold "
                "%.2f: tenders with no extracted criteria will be marked ELIGIBLE.",
                self.matcher.empty_rule_confidence, self.matcher.eligible_threshold,
            )


# Singleton shared by every module
config = Config()
