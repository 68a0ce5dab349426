"""
test_pipeline.py — Tests for the explainer and the verdict pipeline.

The LLM is never loaded here: explainer._llm_generate is patched with
canned outputs (good JSON, fenced JSON, garbage, exceptions) so we can
check that:
  - Well-formed explanations land in the Verdict record
  - Every failure mode falls back to the fixed narrative
  - The deterministic verdict is untouched by explainer failures
  - The CLI writes the verdict and exits non-zero on bad input

Run with:
    python tests/test_pipeline.py
    python -m pytest tests/test_pipeline.py -v
"""

from __future__ import annotations

import json
import logging
import sys
import tempfile
from pathlib import Path
from unittest import mock

# Make sure the project root is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from tender_eligibility import main as cli
from tender_eligibility.config import config
from tender_eligibility.explainer import (
    _parse_json_output,
    fallback_explanation,
    generate_verdict_explanation,
    summarize_profile,
    summarize_requirements,
)
from tender_eligibility.main import EligibilityPipeline
from tender_eligibility.matcher import match_profile_to_tender
from tender_eligibility.schemas import ContractorProfile, TenderRequirements

logging.basicConfig(level=logging.INFO, format="%(levelname)s | %(message)s")
logger = logging.getLogger(__name__)

LLM_PATCH = "tender_eligibility.explainer._llm_generate"

PROFILE = {
    "companyName": "Shree Ganesh Infra Pvt Ltd",
    "category": "Class I Civil",
    "turnoverHistory": [
        {"year": 2023, "amount": 6000000},
        {"year": 2022, "amount": 5000000},
        {"year": 2021, "amount": 4000000},
    ],
    "yearsOfExperience": 10,
    "pastProjects": [{"name": "NH-48 culverts", "value": 1200000, "client": "NHAI", "year": 2022}],
}

TENDER = {
    "tenderNumber": "CPWD/EE/2024/113",
    "turnoverReq": 5500000,
    "experienceReq": 5,
    "projectValue": 18000000,
}

GOOD_OUTPUT = json.dumps({
    "overall_explanation": "The contractor falls short of the average turnover requirement.",
    "remedies": [
        {"criterion": "turnover", "suggestion": "Bid as a joint venture with a partner above 55 lakh turnover."}
    ],
    "detailed_reasoning": "Turnover: 50 lakh vs 55 lakh required. Experience: 10 vs 5 years.",
})


def test_parse_json_output_strategies():
    """Direct, fenced and embedded JSON all parse; junk returns None."""
    assert _parse_json_output('{"a": 1}') == {"a": 1}
    assert _parse_json_output('```json\n{"a": 1}\n```') == {"a": 1}
    assert _parse_json_output('Sure! Here it is: {"a": 1} hope that helps') == {"a": 1}
    assert _parse_json_output("no json at all") is None
    assert _parse_json_output("[1, 2]") is None
    assert _parse_json_output("") is None
    print("  ✓ test_parse_json_output_strategies")


def test_explanation_from_llm():
    """A well-formed response is validated into an Explanation."""
    match = match_profile_to_tender(PROFILE, TENDER)
    with mock.patch(LLM_PATCH, return_value=GOOD_OUTPUT) as fake:
        explanation = generate_verdict_explanation("profile", "tender", match.rule_results)

    prompt = fake.call_args[0][0]
    assert '"ruleId": "turnover"' in prompt
    assert "senior bid compliance officer" in prompt
    assert explanation.overall_explanation.startswith("The contractor falls short")
    assert explanation.remedies[0].criterion == "turnover"
    print("  ✓ test_explanation_from_llm")


def test_plain_string_remedies_are_wrapped():
    """Remedies returned as bare strings become General remedies."""
    output = json.dumps({
        "overall_explanation": "Eligible.",
        "remedies": ["Keep the solvency certificate current."],
        "detailed_reasoning": "All criteria met.",
    })
    with mock.patch(LLM_PATCH, return_value=output):
        explanation = generate_verdict_explanation("p", "t", [])
    assert explanation.remedies[0].criterion == "General"
    assert explanation.remedies[0].suggestion == "Keep the solvency certificate current."
    print("  ✓ test_plain_string_remedies_are_wrapped")


def test_explainer_failures_fall_back():
    """LLM errors, unparsable output and schema violations all fall back."""
    fallback = fallback_explanation()
    cases = [
        mock.patch(LLM_PATCH, side_effect=RuntimeError("model file not found")),
        mock.patch(LLM_PATCH, return_value="I cannot help with that."),
        mock.patch(LLM_PATCH, return_value='{"remedies": []}'),
        mock.patch(LLM_PATCH, return_value='{"overall_explanation": "x", "remedies": [{"criterion": 1}]}'),
    ]
    for case in cases:
        with case:
            explanation = generate_verdict_explanation("p", "t", [])
        assert explanation == fallback
    assert fallback.overall_explanation == "Automated explanation unavailable."
    assert fallback.remedies == []
    assert fallback.detailed_reasoning == "Please review the rule results manually."
    print("  ✓ test_explainer_failures_fall_back")


def test_summaries():
    """Summaries show N/A for missing values and never raise."""
    profile = ContractorProfile.model_validate(PROFILE)
    text = summarize_profile(profile)
    assert "Company: Shree Ganesh Infra Pvt Ltd" in text
    assert "Turnover (3yr avg): available" in text
    assert "Exp Years: 10" in text
    assert "Past Projects: 1" in text

    bare = summarize_requirements(TenderRequirements())
    assert "Turnover Req: N/A" in bare
    assert "Exp Req: N/A years" in bare
    assert "Project Value: N/A" in bare

    empty_profile = summarize_profile(ContractorProfile())
    assert "Turnover (3yr avg): missing" in empty_profile
    assert "Exp Years: 0" in empty_profile
    print("  ✓ test_summaries")


def test_pipeline_builds_verdict():
    """Matcher fields and explainer fields both land in the Verdict."""
    with mock.patch(LLM_PATCH, return_value=GOOD_OUTPUT):
        verdict = EligibilityPipeline().run(PROFILE, TENDER, tender_id="t-1", profile_id="p-1")

    assert verdict.overall_verdict == "INELIGIBLE"
    assert verdict.confidence_score == 1.0
    assert [r.rule_id for r in verdict.clause_results] == ["turnover", "experience_years"]
    assert verdict.financial_match["turnover_met"] is False
    assert verdict.financial_match["details"].startswith("Turnover: 50 lakh")
    assert verdict.technical_match == {}
    assert verdict.document_gaps[0].criterion == "turnover"
    assert verdict.rules_version == config.matcher.rules_version
    assert verdict.ai_model == config.llm.model_name
    assert verdict.tender_id == "t-1" and verdict.profile_id == "p-1"
    print("  ✓ test_pipeline_builds_verdict")


def test_pipeline_survives_explainer_failure():
    """A dead explainer still yields the deterministic verdict."""
    with mock.patch(LLM_PATCH, side_effect=RuntimeError("timeout")):
        verdict = EligibilityPipeline().run(PROFILE, {"turnoverReq": 5000000, "experienceReq": 5})

    assert verdict.overall_verdict == "ELIGIBLE"
    assert verdict.confidence_score == 1.0
    assert len(verdict.clause_results) == 2
    assert verdict.overall_explanation == "Automated explanation unavailable."
    assert verdict.document_gaps == []
    print("  ✓ test_pipeline_survives_explainer_failure")


def test_pipeline_without_explainer():
    """explain=False never touches the LLM."""
    with mock.patch(LLM_PATCH) as fake:
        verdict = EligibilityPipeline(explain=False).run(PROFILE, {"experienceReq": 3})
    fake.assert_not_called()
    assert verdict.ai_model is None
    assert verdict.financial_match["turnover_met"] is None
    assert verdict.overall_verdict == "ELIGIBLE"
    print("  ✓ test_pipeline_without_explainer")


def test_pipeline_writes_output():
    """output_path gets camelCase verdict JSON."""
    with tempfile.TemporaryDirectory() as tmp:
        out = Path(tmp) / "nested" / "verdict.json"
        verdict = EligibilityPipeline(explain=False).run(PROFILE, TENDER, output_path=str(out))
        data = json.loads(out.read_text(encoding="utf-8"))

    assert data["id"] == verdict.id
    assert data["overallVerdict"] == "INELIGIBLE"
    assert data["clauseResults"][0]["ruleId"] == "turnover"
    assert data["clauseResults"][0]["value"] == {"required": 5500000.0, "actual": 5000000.0}
    print("  ✓ test_pipeline_writes_output")


def test_cli_round_trip():
    """The CLI reads profile/tender files and writes a verdict file."""
    with tempfile.TemporaryDirectory() as tmp:
        profile_path = Path(tmp) / "profile.json"
        tender_path = Path(tmp) / "tender.json"
        out_path = Path(tmp) / "verdict.json"
        profile_path.write_text(json.dumps(PROFILE), encoding="utf-8")
        tender_path.write_text(json.dumps({"experienceReq": 12}), encoding="utf-8")

        argv = ["tender_eligibility", str(profile_path), str(tender_path),
                "--no-explain", "-o", str(out_path)]
        with mock.patch.object(sys, "argv", argv):
            cli.main()
        data = json.loads(out_path.read_text(encoding="utf-8"))

    assert data["overallVerdict"] == "INELIGIBLE"
    assert data["clauseResults"][0]["ruleId"] == "experience_years"
    print("  ✓ test_cli_round_trip")


def test_cli_exits_on_bad_input():
    """Missing files and invalid JSON exit with status 1."""
    with tempfile.TemporaryDirectory() as tmp:
        bad_json = Path(tmp) / "bad.json"
        bad_json.write_text("{not json", encoding="utf-8")
        scenarios = [
            [str(Path(tmp) / "missing.json"), str(bad_json)],
            [str(bad_json), str(bad_json)],
        ]
        for files in scenarios:
            argv = ["tender_eligibility", *files, "--no-explain"]
            with mock.patch.object(sys, "argv", argv):
                try:
                    cli.main()
                    raise AssertionError("expected SystemExit")
                except SystemExit as exc:
                    assert exc.code == 1
    print("  ✓ test_cli_exits_on_bad_input")


def run_all_tests():
    """Run all tests and report results."""
    print("\n" + "=" * 60)
    print("  TenderEligibility — Pipeline Test Suite")
    print("=" * 60 + "\n")

    tests = [
        # Explainer
        test_parse_json_output_strategies,
        test_explanation_from_llm,
        test_plain_string_remedies_are_wrapped,
        test_explainer_failures_fall_back,
        test_summaries,
        # Pipeline
        test_pipeline_builds_verdict,
        test_pipeline_survives_explainer_failure,
        test_pipeline_without_explainer,
        test_pipeline_writes_output,
        # CLI
        test_cli_round_trip,
        test_cli_exits_on_bad_input,
    ]

    passed = 0
    failed = 0

    for test_fn in tests:
        try:
            test_fn()
            passed += 1
        except Exception as exc:
            failed += 1
            print(f"  ✗ {test_fn.__name__} FAILED: {exc}")

    print(f"\n{'=' * 60}")
    print(f"  Results: {passed} passed, {failed} failed, {len(tests)} total")
    print(f"{'=' * 60}\n")

    return failed == 0


if __name__ == "__main__":
    success = run_all_tests()
    sys.exit(0 if success else 1)
