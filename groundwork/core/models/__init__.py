"""
Domain models - Pydantic types for the scaffolding engine.

All models are re-exported here for convenient access:

    from groundwork.core.models import Fact, Manifest, StepRecord
"""

from groundwork.core.models.fact import (
    Confidence,
    Fact,
    FactKind,
    FactSchema,
    FactValue,
)
from groundwork.core.models.manifest import (
    InvalidTransition,
    Manifest,
    OutputRecord,
    StepRecord,
    StepStatus,
)
from groundwork.core.models.report import (
    Level,
    VerificationFinding,
    VerificationReport,
)

__all__ = [
    # fact.py
    "Confidence",
    "Fact",
    "FactKind",
    "FactSchema",
    "FactValue",
    # manifest.py
    "InvalidTransition",
    "Level",
    "Manifest",
    "OutputRecord",
    "StepRecord",
    "StepStatus",
    # report.py
    "VerificationFinding",
    "VerificationReport",
]
