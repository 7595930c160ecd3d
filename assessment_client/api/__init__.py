"""Assessment server transport."""

from assessment_client.api.client import AssessmentApiClient

__all__ = ["AssessmentApiClient"]
