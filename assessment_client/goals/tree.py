"""
Goal selection tree.

Holds the quality model's goals as an arena of nodes addressed by integer id.
Each node keeps its parent id and an ordered list of child ids, so cascading
and traversal never need back-referencing objects.

Usage:
    tree = GoalTree.build([
        {"name": "Performance", "subGoals": [{"name": "LoadTime"}, {"name": "Interactivity"}]},
    ])
    performance = tree.find("Performance")
    tree.toggle_selection(performance)
    tree.selected_names()   # ["Performance", "LoadTime", "Interactivity"]
"""

from dataclasses import dataclass, field
from typing import Any, Iterator, List, Mapping, Optional, Sequence, Union

from assessment_client.utils.exceptions import MalformedModelError
from assessment_client.utils.logging import get_logger

logger = get_logger(__name__)

# Keys that may hold nested goals in a definition, in lookup order
CHILD_KEYS = ("subGoals", "children")


@dataclass
class GoalNode:
    """Single goal in the arena."""
    id: int
    name: str
    description: str = ""
    weight: float = 0.0
    parent: Optional[int] = None
    children: List[int] = field(default_factory=list)
    selected: bool = False
    expanded: bool = False   # presentation only

    @property
    def is_leaf(self) -> bool:
        return not self.children


NodeRef = Union[int, GoalNode]


class GoalTree:
    """
    Forest of goal nodes with cascading selection.

    The shape is fixed once built; only ``selected`` and ``expanded`` flags
    change afterwards. A new quality model means a new tree.
    """

    def __init__(self) -> None:
        self._nodes: List[GoalNode] = []
        self._roots: List[int] = []
        self._selected_names: List[str] = []

    # ========================================================================
    # Construction
    # ========================================================================

    @classmethod
    def build(cls, definition: Sequence[Mapping[str, Any]]) -> "GoalTree":
        """
        Build a forest from a nested goal definition.

        Args:
            definition: Top-level goals; each a mapping with ``name``,
                ``description``, ``weight`` and optional ``subGoals``

        Returns:
            New tree with every node deselected and collapsed

        Raises:
            MalformedModelError: If a node has no name, is not a mapping,
                or the nesting is cyclic
        """
        if isinstance(definition, (str, bytes)) or not isinstance(definition, Sequence):
            raise MalformedModelError("Goal definition must be a list of goals")

        tree = cls()
        for goal in definition:
            root_id = tree._add(goal, parent=None, ancestors=(), path="")
            tree._roots.append(root_id)

        logger.debug(f"Built goal tree: {len(tree._roots)} roots, {len(tree._nodes)} nodes")
        return tree

    @classmethod
    def from_quality_model(cls, payload: Mapping[str, Any]) -> "GoalTree":
        """
        Build a tree from a quality model response (``{"goals": [...]}``).

        Raises:
            MalformedModelError: If the payload has no goal list
        """
        if not isinstance(payload, Mapping):
            raise MalformedModelError("Quality model must be an object")
        goals = payload.get("goals")
        if not isinstance(goals, list):
            raise MalformedModelError("Quality model has no 'goals' list", path="goals")
        return cls.build(goals)

    def _add(
        self,
        goal: Any,
        parent: Optional[int],
        ancestors: tuple,
        path: str,
    ) -> int:
        if not isinstance(goal, Mapping):
            raise MalformedModelError(
                f"Goal at '{path or '/'}' is not an object",
                path=path or "/",
            )
        if id(goal) in ancestors:
            raise MalformedModelError(f"Cyclic goal nesting at '{path}'", path=path)

        name = goal.get("name")
        if not isinstance(name, str) or not name.strip():
            raise MalformedModelError(f"Goal under '{path or '/'}' has no name", path=path or "/")

        node_path = f"{path}/{name}" if path else name
        try:
            weight = float(goal.get("weight") or 0.0)
        except (TypeError, ValueError) as e:
            raise MalformedModelError(
                f"Goal '{node_path}' has a non-numeric weight",
                path=node_path,
            ) from e

        node = GoalNode(
            id=len(self._nodes),
            name=name,
            description=goal.get("description") or "",
            weight=weight,
            parent=parent,
        )
        self._nodes.append(node)

        sub_goals = None
        for key in CHILD_KEYS:
            if goal.get(key) is not None:
                sub_goals = goal[key]
                break

        if sub_goals is not None:
            if isinstance(sub_goals, (str, bytes, Mapping)) or not isinstance(sub_goals, Sequence):
                raise MalformedModelError(
                    f"Sub-goals of '{node_path}' must be a list",
                    path=node_path,
                )
            for child in sub_goals:
                child_id = self._add(child, parent=node.id, ancestors=ancestors + (id(goal),), path=node_path)
                node.children.append(child_id)

        return node.id

    # ========================================================================
    # Lookups
    # ========================================================================

    def __len__(self) -> int:
        return len(self._nodes)

    def roots(self) -> List[GoalNode]:
        """Top-level goals in definition order."""
        return [self._nodes[i] for i in self._roots]

    def node(self, node: NodeRef) -> GoalNode:
        """Resolve a node id (or node) to the arena node."""
        node_id = node.id if isinstance(node, GoalNode) else node
        if not isinstance(node_id, int) or not 0 <= node_id < len(self._nodes):
            raise KeyError(f"Unknown goal node: {node!r}")
        resolved = self._nodes[node_id]
        if isinstance(node, GoalNode) and node is not resolved:
            raise KeyError(f"Goal node {node.name!r} belongs to another tree")
        return resolved

    def children(self, node: NodeRef) -> List[GoalNode]:
        return [self._nodes[i] for i in self.node(node).children]

    def parent(self, node: NodeRef) -> Optional[GoalNode]:
        parent_id = self.node(node).parent
        return None if parent_id is None else self._nodes[parent_id]

    def find(self, path: Union[str, Sequence[str]]) -> GoalNode:
        """
        Find a node by its name path.

        Names are only unique among siblings, so nested goals are addressed
        as ``"Performance/LoadTime"`` or ``["Performance", "LoadTime"]``.

        Raises:
            KeyError: If no node matches
        """
        parts = [p for p in path.split("/") if p] if isinstance(path, str) else list(path)
        if not parts:
            raise KeyError("Empty goal path")

        candidates = self._roots
        found: Optional[GoalNode] = None
        for part in parts:
            found = next((self._nodes[i] for i in candidates if self._nodes[i].name == part), None)
            if found is None:
                raise KeyError(f"No goal at path {'/'.join(parts)!r}")
            candidates = found.children
        return found

    def walk(self, start: Optional[NodeRef] = None) -> Iterator[GoalNode]:
        """Pre-order, left-to-right traversal of the forest (or one subtree)."""
        stack = [self.node(start).id] if start is not None else list(reversed(self._roots))
        while stack:
            node = self._nodes[stack.pop()]
            yield node
            stack.extend(reversed(node.children))

    # ========================================================================
    # Selection / expansion
    # ========================================================================

    def toggle_selection(self, node: NodeRef) -> bool:
        """
        Flip a node's selection and cascade the new value to all descendants.

        Ancestors and siblings are left as they are, so a partially selected
        subtree is a valid state.

        Returns:
            The node's new ``selected`` value
        """
        target = self.node(node)
        value = not target.selected
        for descendant in self.walk(target):
            descendant.selected = value

        self._selected_names = self._collect_selected()
        logger.debug(
            f"Goal '{target.name}' {'selected' if value else 'deselected'}, "
            f"{len(self._selected_names)} goals selected"
        )
        return value

    def toggle_expand(self, node: NodeRef) -> bool:
        """Flip a node's ``expanded`` flag. No cascade."""
        target = self.node(node)
        target.expanded = not target.expanded
        return target.expanded

    def selected_names(self) -> List[str]:
        """Names of all selected nodes at any depth, pre-order (new list)."""
        return list(self._selected_names)

    def _collect_selected(self) -> List[str]:
        return [node.name for node in self.walk() if node.selected]


__all__ = ["GoalNode", "GoalTree"]
