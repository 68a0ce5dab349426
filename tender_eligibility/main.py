"""
main.py — Verdict pipeline for TenderEligibility.

Ties the deterministic matcher to the LLM explainer and assembles the
Verdict record that gets persisted:

  1. Coerce the profile and tender into schema models
  2. Run the matcher (rules + aggregation)
  3. Ask the explainer for a narrative (fallback text if it fails)
  4. Build the Verdict

The matcher's fields (verdict, confidence, rule table) are copied straight
into the record. The explainer only ever adds prose and remedies.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from pathlib import Path
from typing import Any, Optional

from tender_eligibility.config import config
from tender_eligibility.explainer import (
    fallback_explanation,
    generate_verdict_explanation,
    summarize_profile,
    summarize_requirements,
)
from tender_eligibility.matcher import (
    coerce_profile,
    coerce_tender,
    match_profile_to_tender,
)
from tender_eligibility.schemas import Verdict

logger = logging.getLogger("tender_eligibility")


class EligibilityPipeline:
    """
    Match a profile against a tender and produce a Verdict.

    Usage:
        pipeline = EligibilityPipeline()
        verdict = pipeline.run(profile_dict, tender_dict, tender_id="...")
        print(verdict.model_dump_json(by_alias=True, indent=2))

    explain=False skips the LLM entirely and stores the fallback narrative,
    which is what batch re-evaluation runs use.
    """

    def __init__(self, explain: bool = True):
        self.explain = explain

    def run(
        self,
        profile: Any,
        tender: Any,
        tender_id: Optional[str] = None,
        profile_id: Optional[str] = None,
        output_path: Optional[str] = None,
    ) -> Verdict:
        overall_start = time.time()

        profile_model = coerce_profile(profile)
        tender_model = coerce_tender(tender)

        t0 = time.time()
        match = match_profile_to_tender(profile_model, tender_model)
        logger.info(
            "[1/2] Matched: %s (confidence=%.2f, %d rules) in %.3fs",
            match.overall_verdict, match.confidence_score,
            len(match.rule_results), time.time() - t0,
        )

        t0 = time.time()
        if self.explain:
            explanation = generate_verdict_explanation(
                summarize_profile(profile_model),
                summarize_requirements(tender_model),
                match.rule_results,
            )
            ai_model = config.llm.model_name
        else:
            explanation = fallback_explanation()
            ai_model = None
        logger.info("[2/2] Explanation ready in %.1fs", time.time() - t0)

        turnover = next((r for r in match.rule_results if r.rule_id == "turnover"), None)
        verdict = Verdict(
            tender_id=tender_id,
            profile_id=profile_id,
            overall_verdict=match.overall_verdict,
            confidence_score=match.confidence_score,
            overall_explanation=explanation.overall_explanation,
            clause_results=match.rule_results,
            financial_match={
                "turnover_met": turnover.met if turnover is not None else None,
                "details": explanation.detailed_reasoning,
            },
            technical_match={},
            document_gaps=explanation.remedies,
            rules_version=config.matcher.rules_version,
            ai_model=ai_model,
        )

        logger.info("DONE in %.1fs | verdict %s", time.time() - overall_start, verdict.id)

        if output_path:
            os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
            with open(output_path, "w", encoding="utf-8") as f:
                f.write(verdict.model_dump_json(by_alias=True, indent=2))
            logger.info("Verdict written to: %s", output_path)

        return verdict


def _load_json(path: str) -> Any:
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(path)
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path} is not valid JSON: {exc}") from exc


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="tender_eligibility",
        description="TenderEligibility — Check a contractor profile against tender requirements",
    )
    parser.add_argument("profile", help="Path to contractor profile JSON")
    parser.add_argument("tender", help="Path to extracted tender requirements JSON")
    parser.add_argument("--output", "-o", default=None, help="Verdict JSON output path (default: stdout)")
    parser.add_argument("--no-explain", action="store_true", help="Skip the LLM explanation")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    args = parser.parse_args()

    level = logging.DEBUG if args.verbose else getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
    )

    pipeline = EligibilityPipeline(explain=not args.no_explain)

    try:
        profile = _load_json(args.profile)
        tender = _load_json(args.tender)
        verdict = pipeline.run(profile, tender, output_path=args.output)
        if args.output is None:
            print(verdict.model_dump_json(by_alias=True, indent=2))
    except FileNotFoundError as exc:
        logger.error("File not found: %s", exc)
        sys.exit(1)
    except ValueError as exc:
        logger.error("Invalid input: %s", exc)
        sys.exit(1)
    except RuntimeError as exc:
        logger.error("Runtime error: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
