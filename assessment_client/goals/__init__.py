"""Quality model goal tree with cascading selection."""

from assessment_client.goals.tree import GoalNode, GoalTree

__all__ = ["GoalNode", "GoalTree"]
