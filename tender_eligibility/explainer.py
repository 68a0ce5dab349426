"""
explainer.py — LLM-written narrative for a verdict.

The matcher decides; this module only explains. We hand the local Mistral
model a short profile summary, a short requirements summary and the rule
results as JSON, and ask for an executive summary, remedies for each failed
criterion and a clause-by-clause breakdown.

Nothing in here is allowed to break a match. If the model file is missing,
generation times out, or the output is not the JSON we asked for, we
return fallback_explanation() and the verdict is stored anyway. The pass/fail
table is deterministic and is always shown to the user.
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Dict, Optional, Sequence

from pydantic import ValidationError

from tender_eligibility.config import config
from tender_eligibility.schemas import Explanation, RuleResult

logger = logging.getLogger(__name__)

# Module-level LLM cache. Loading the model takes ~10s so we do it once.
_llm_instance = None


VERDICT_EXPLANATION_PROMPT = """You are a senior bid compliance officer.

Analyze the following contractor profile against the tender requirements and explain the eligibility verdict.

Input:
- Contractor Profile Summary
- Tender Requirements
- Rule Evaluation Results (Pass/Fail for each criterion)

Task:
1. Provide a professional, concise "overall_explanation" of why the contractor is Eligible, Ineligible, or Borderline.
2. For each failed or borderline criterion, suggest a specific remedy or specific missing document if applicable.
3. Do NOT invent requirements that are not present in the tender data.

Context:
Contractor Profile: {profile_summary}

Tender Requirements: {tender_summary}

Rule Results: {rule_results}

OUTPUT FORMAT (respond ONLY with valid JSON, no markdown fences):
{{
  "overall_explanation": "...",
  "remedies": [{{"criterion": "...", "suggestion": "..."}}],
  "detailed_reasoning": "..."
}}
"""


def fallback_explanation() -> Explanation:
    """Fixed narrative used whenever the LLM cannot produce one."""
    return Explanation(
        overall_explanation="Automated explanation unavailable.",
        remedies=[],
        detailed_reasoning="Please review the rule results manually.",
    )


def generate_verdict_explanation(
    profile_summary: str,
    tender_summary: str,
    rule_results: Sequence[RuleResult],
) -> Explanation:
    """
    Ask the LLM to explain a set of rule results.

    Always returns an Explanation. Failures are logged and replaced with
    the fallback.
    """
    try:
        prompt = VERDICT_EXPLANATION_PROMPT.format(
            profile_summary=profile_summary.strip(),
            tender_summary=tender_summary.strip(),
            rule_results=json.dumps(
                [r.model_dump(by_alias=True) for r in rule_results], indent=2
            ),
        )
        raw_output = _llm_generate(prompt)
        parsed = _parse_json_output(raw_output)
        if parsed is None:
            logger.error(
                "Could not parse explainer output as JSON. First 500 chars: %s",
                raw_output[:500],
            )
            return fallback_explanation()
        return Explanation.model_validate(parsed)
    except ValidationError as exc:
        logger.error("Explainer output failed schema validation: %s", exc)
    except Exception as exc:
        logger.error("Explanation generation error: %s", exc)
    return fallback_explanation()


def _get_llm():
    """
    Lazy-load Mistral-7B via llama-cpp-python. Cached at module level.

    Import is deferred so the matcher and its tests never need the
    llama-cpp wheel or a 4GB model file.
    """
    global _llm_instance
    if _llm_instance is not None:
        return _llm_instance

    try:
        from llama_cpp import Llama

        logger.info("Loading explainer LLM from: %s", config.llm.model_path)
        _llm_instance = Llama(
            model_path=config.llm.model_path,
            n_ctx=config.llm.n_ctx,
            n_threads=config.llm.n_threads or None,
            verbose=False,
        )
        logger.info("Explainer LLM loaded.")
        return _llm_instance
    except ImportError as exc:
        raise RuntimeError(
            "llama-cpp-python is not installed; install the 'llm' extra "
            "to enable verdict explanations."
        ) from exc
    except FileNotFoundError as exc:
        raise RuntimeError(
            f"LLM model file not found: '{config.llm.model_path}'. "
            f"Set the LLM_MODEL_PATH environment variable."
        ) from exc
    except Exception as exc:
        raise RuntimeError(f"Failed to load LLM: {exc}") from exc


def _llm_generate(prompt: str) -> str:
    """Generate text from the LLM with retry and exponential backoff."""
    llm = _get_llm()
    last_error: Optional[Exception] = None

    for attempt in range(1, config.llm.max_retries + 1):
        try:
            response = llm(
                prompt,
                max_tokens=config.llm.max_tokens,
                temperature=config.llm.temperature,
                stop=["```", "\n\n\n"],
            )
            text = response["choices"][0]["text"].strip()
            logger.info(
                "Explainer generated %d chars on attempt %d/%d",
                len(text), attempt, config.llm.max_retries,
            )
            return text
        except Exception as exc:
            last_error = exc
            delay = config.llm.retry_base_delay * (2 ** (attempt - 1))
            logger.warning(
                "Explainer attempt %d/%d failed: %s. Retrying in %.1fs.",
                attempt, config.llm.max_retries, exc, delay,
            )
            time.sleep(delay)

    raise RuntimeError(
        f"LLM generation failed after {config.llm.max_retries} retries: {last_error}"
    )


def _parse_json_output(text: str) -> Optional[Dict[str, Any]]:
    """
    Multi-strategy JSON parser for LLM output.

    1. Direct parse
    2. Strip markdown fences and retry
    3. Regex out the first {...} block
    Anything else returns None and the caller falls back.
    """
    if not text:
        return None

    try:
        parsed = json.loads(text)
        return parsed if isinstance(parsed, dict) else None
    except json.JSONDecodeError:
        pass

    cleaned = re.sub(r"```(?:json)?\s*", "", text)
    cleaned = cleaned.strip().rstrip("`")
    try:
        parsed = json.loads(cleaned)
        return parsed if isinstance(parsed, dict) else None
    except json.JSONDecodeError:
        pass

    match = re.search(r"\{[\s\S]*\}", cleaned)
    if match:
        try:
            return json.loads(match.group())
        except json.JSONDecodeError:
            pass

    return None


def summarize_profile(profile) -> str:
    """Free-text profile summary for the prompt."""
    return (
        f"Company: {profile.company_name or 'N/A'}\n"
        f"Category: {profile.category or 'N/A'}\n"
        f"Turnover (3yr avg): {'available' if profile.turnover_history else 'missing'}\n"
        f"Exp Years: {_fmt_optional(profile.years_of_experience, '0')}\n"
        f"Past Projects: {len(profile.past_projects)}"
    )


def summarize_requirements(tender) -> str:
    """Free-text requirements summary for the prompt."""
    return (
        f"Turnover Req: {_fmt_optional(tender.turnover_req)}\n"
        f"Exp Req: {_fmt_optional(tender.experience_req)} years\n"
        f"Project Value: {_fmt_optional(tender.project_value)}"
    )


def _fmt_optional(value: Optional[float], missing: str = "N/A") -> str:
    if not value:
        return missing
    if float(value).is_integer():
        return str(int(value))
    return str(value)
