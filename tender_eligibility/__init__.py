"""
TenderEligibility — deterministic contractor-vs-tender eligibility matching.

Takes a contractor profile and the structured requirements extracted from a
tender document and produces a rule-by-rule pass/fail table, an overall
verdict and a confidence score, with an optional LLM-written explanation.
"""

__version__ = "1.0.0"
__author__ = "TenderEligibility"
