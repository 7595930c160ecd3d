"""
Assessment session module.

Provides the session orchestrator, its state and wire models, the bounded
progress log, result reconciliation and chart-series helpers.

Usage:
    from assessment_client.assessment import SessionOrchestrator

    orchestrator = SessionOrchestrator(api, observer=render)
    await orchestrator.start(
        {"name": "shop", "type": "web", "technology": "angular",
         "path": "/srv/shop", "url": "http://localhost:4200"},
        goal_tree,
    )

    # Later, from a UI callback
    orchestrator.stop()
"""

from assessment_client.assessment.models import (
    AppMetadata,
    AssessmentRequest,
    AssessmentsPayload,
    GoalAssessment,
    GoalResult,
    MetricAssessmentDetail,
    MetricHistoryPoint,
    MetricResult,
    ProgressEvent,
    SessionPhase,
    SessionState,
    StartResponse,
)
from assessment_client.assessment.progress import ProgressBuffer
from assessment_client.assessment.reconciler import reconcile, validate_snapshot
from assessment_client.assessment.orchestrator import SessionOrchestrator

__all__ = [
    # Orchestrator
    "SessionOrchestrator",

    # State
    "SessionPhase",
    "SessionState",
    "ProgressBuffer",

    # Wire models
    "AppMetadata",
    "AssessmentRequest",
    "StartResponse",
    "ProgressEvent",
    "AssessmentsPayload",
    "GoalResult",
    "GoalAssessment",
    "MetricResult",
    "MetricHistoryPoint",
    "MetricAssessmentDetail",

    # Reconciliation
    "reconcile",
    "validate_snapshot",
]
