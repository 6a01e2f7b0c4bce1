"""
feedback-core
=============

Survey submission pipeline for a multi-tenant feedback platform:
quota admission, sentiment and persona classification, and
close-the-loop alert correlation.

Usage:
    from feedback_core import Submission, build_pipeline

    pipeline = build_pipeline()
    result = await pipeline.process(Submission(id="S-1", tenant_id="t", form_id="f", data={...}))
"""

from feedback_core.pipeline import PipelineResult, SubmissionPipeline, build_pipeline
from feedback_core.shared.domain import Submission

__version__ = "1.0.0"

__all__ = [
    "PipelineResult",
    "Submission",
    "SubmissionPipeline",
    "build_pipeline",
    "__version__",
]
