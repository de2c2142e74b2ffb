"""
Completion scoring for extracted job data.

Two classifiers share the CompletionState scale:

evaluate() is the strict ladder stored on every job row: title, then
description, then description + location + application URL, then salary.

CompletionScorer is the weighted scorer used to judge whether a learned
extraction config is good enough to keep.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from pipeline.models import ExtractedJobData

logger = logging.getLogger(__name__)


class CompletionState(str, Enum):
    COMPLETE = "Complete"
    SUFFICIENT = "Sufficient"
    PARTIAL = "Partial"
    MINIMAL = "Minimal"
    FAILED = "Failed"
    # Legacy rows and records not yet evaluated
    UNKNOWN = "Unknown"

    def to_db_string(self) -> str:
        return self.value.lower()

    @classmethod
    def from_db_string(cls, value: Optional[str]) -> "CompletionState":
        parsed = cls.from_string(value or "")
        return parsed if parsed is not None else cls.UNKNOWN

    @classmethod
    def from_string(cls, value: str) -> Optional["CompletionState"]:
        for state in cls:
            if state.value.lower() == value.strip().lower():
                return state
        return None


def _present(value) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def evaluate(data: ExtractedJobData) -> CompletionState:
    """
    Classify an extraction with the ordered completion ladder.

    Evaluated top-down, first match wins.
    """
    if not _present(data.title):
        return CompletionState.FAILED
    if not _present(data.description):
        return CompletionState.MINIMAL
    if _present(data.location) and _present(data.application_url):
        if data.salary_min is not None or data.salary_max is not None:
            return CompletionState.COMPLETE
        return CompletionState.SUFFICIENT
    return CompletionState.PARTIAL


# Minimum trimmed length for a field to count as extracted
MIN_FIELD_LENGTH = 5

FIELD_WEIGHTS: Dict[str, int] = {
    "title": 20,
    "company_name": 15,
    "description": 25,
    "location": 10,
    "salary_min": 5,
    "salary_max": 5,
    "qualifications": 5,
    "responsibilities": 5,
    "benefits": 5,
    "job_type": 3,
    "experience_level": 2,
}

REQUIRED_FIELDS = {"title", "company_name", "description"}

MAX_SCORE = sum(FIELD_WEIGHTS.values())

COMPLETE_THRESHOLD = 0.90
SUFFICIENT_THRESHOLD = 0.70
PARTIAL_THRESHOLD = 0.50


@dataclass(frozen=True)
class ScoringResult:
    state: CompletionState
    score: float
    earned_points: int
    max_points: int
    present_fields: List[str]
    missing_required: List[str]
    missing_optional: List[str]

    @property
    def score_percent(self) -> str:
        return f"{self.score * 100:.1f}%"

    @property
    def summary(self) -> str:
        return f"{self.state.value} ({self.score_percent}, {self.earned_points}/{self.max_points} points)"

    @property
    def has_required_fields(self) -> bool:
        return not self.missing_required


class CompletionScorer:
    """Weighted completeness scorer (weights total 100)"""

    @staticmethod
    def score(fields: Dict[str, Optional[str]]) -> ScoringResult:
        """
        Score a mapping of field name to extracted text.

        Args:
            fields: Field name -> value; None or short values count as missing

        Returns:
            ScoringResult with state, score and field breakdown
        """
        present = {
            name for name, value in fields.items()
            if value is not None and len(value.strip()) >= MIN_FIELD_LENGTH
        }
        missing_required = REQUIRED_FIELDS - present
        missing_optional = set(FIELD_WEIGHTS) - present - REQUIRED_FIELDS

        earned = sum(FIELD_WEIGHTS.get(name, 0) for name in present)
        ratio = earned / MAX_SCORE

        if missing_required:
            state = CompletionState.FAILED
        elif ratio >= COMPLETE_THRESHOLD:
            state = CompletionState.COMPLETE
        elif ratio >= SUFFICIENT_THRESHOLD:
            state = CompletionState.SUFFICIENT
        elif ratio >= PARTIAL_THRESHOLD:
            state = CompletionState.PARTIAL
        else:
            state = CompletionState.MINIMAL

        return ScoringResult(
            state=state,
            score=ratio,
            earned_points=earned,
            max_points=MAX_SCORE,
            present_fields=sorted(present),
            missing_required=sorted(missing_required),
            missing_optional=sorted(missing_optional),
        )

    @classmethod
    def score_extracted(cls, data: ExtractedJobData) -> ScoringResult:
        def joined(values: Optional[List[str]]) -> Optional[str]:
            return ", ".join(values) if values else None

        fields = {
            "title": data.title,
            "company_name": data.company_name,
            "description": data.description,
            "location": data.location,
            "salary_min": str(data.salary_min) if data.salary_min is not None else None,
            "salary_max": str(data.salary_max) if data.salary_max is not None else None,
            "qualifications": joined(data.qualifications),
            "responsibilities": joined(data.responsibilities),
            "benefits": joined(data.benefits),
            "job_type": data.job_type,
            "experience_level": data.experience_level,
        }
        return cls.score(fields)
