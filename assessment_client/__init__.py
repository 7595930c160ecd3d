"""
Assessment session client.

Drives server-executed quality assessments: goal selection, the start
request, and the progress and results streams of a running session.
"""

from assessment_client.api import AssessmentApiClient
from assessment_client.assessment import (
    AppMetadata,
    GoalResult,
    ProgressBuffer,
    SessionOrchestrator,
    SessionPhase,
    SessionState,
    reconcile,
)
from assessment_client.config import AssessmentClientConfig, get_config
from assessment_client.goals import GoalNode, GoalTree
from assessment_client.streaming import ChannelError, ChannelItem, ChannelName, StreamChannel

__version__ = "0.1.0"

__all__ = [
    "AssessmentApiClient",
    "AppMetadata",
    "GoalResult",
    "ProgressBuffer",
    "SessionOrchestrator",
    "SessionPhase",
    "SessionState",
    "reconcile",
    "AssessmentClientConfig",
    "get_config",
    "GoalNode",
    "GoalTree",
    "ChannelError",
    "ChannelItem",
    "ChannelName",
    "StreamChannel",
    "__version__",
]
