"""Recall -> Apply -> Decide -> Learn pipeline stages."""

from .apply import apply
from .decide import decide
from .learn import LearnResult, learn
from .pipeline import PipelineResult, run_pipeline, submit_feedback
from .recall import recall

__all__ = [
    "recall",
    "apply",
    "decide",
    "learn",
    "LearnResult",
    "PipelineResult",
    "run_pipeline",
    "submit_feedback",
]
