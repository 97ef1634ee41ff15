"""Conversational agent engine."""

from . import schemas
from .classifier import Classifier, KeywordClassifier
from .insight_extractor import InsightAnalysis, InsightExtractor
from .policy_guard import PolicyCheckResult, PolicyGuard, PolicyViolation

__all__ = [
    "Classifier",
    "InsightAnalysis",
    "InsightExtractor",
    "KeywordClassifier",
    "PolicyCheckResult",
    "PolicyGuard",
    "PolicyViolation",
    "schemas",
]
