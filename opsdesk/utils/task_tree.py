"""
Walker for the three-level task tree.

Trees are lists of level-0 TaskNode roots with children in `subtasks`.
Ids are unique across the whole table, so a tree that holds an id twice
is corrupt: lookups raise TreeIntegrityError instead of picking the first
match.
"""

import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional

from ..database.exceptions import TreeIntegrityError, ValidationError
from ..models.task import TaskNode, MAX_TASK_LEVEL
from .validation import parse_input

logger = logging.getLogger(__name__)

# Structure is owned by the accessor's re-parenting logic
PROTECTED_FIELDS = frozenset({"id", "level", "parent_id", "subtasks"})


def build_tree(nodes: Iterable[TaskNode]) -> List[TaskNode]:
    """
    Nest a flat list of nodes by parent_id, preserving input order.

    A node whose parent is not in the list becomes a root. Input nodes are
    copied, their existing `subtasks` are discarded.
    """
    by_id: Dict[int, TaskNode] = {}
    ordered: List[TaskNode] = []
    for node in nodes:
        if node.id in by_id:
            raise TreeIntegrityError(f"Task {node.id} appears more than once")
        copy = node.model_copy(update={"subtasks": []})
        by_id[node.id] = copy
        ordered.append(copy)

    roots: List[TaskNode] = []
    for node in ordered:
        parent = by_id.get(node.parent_id) if node.parent_id is not None else None
        if parent is None:
            roots.append(node)
            continue
        if parent.level + 1 != node.level or parent.level >= MAX_TASK_LEVEL:
            logger.warning(
                f"Task {node.id} (level {node.level}) does not fit under "
                f"task {parent.id} (level {parent.level}), listing it as a root"
            )
            roots.append(node)
            continue
        parent.subtasks.append(node)
    return roots


def iter_nodes(roots: Iterable[TaskNode]) -> Iterator[TaskNode]:
    """Depth-first, parents before children."""
    for node in roots:
        yield node
        yield from iter_nodes(node.subtasks)


def find_node(roots: List[TaskNode], node_id: int) -> Optional[TaskNode]:
    """Locate a node anywhere in the tree, or None."""
    matches = [node for node in iter_nodes(roots) if node.id == node_id]
    if len(matches) > 1:
        raise TreeIntegrityError(f"Task {node_id} appears {len(matches)} times in one tree")
    return matches[0] if matches else None


def _find_container(siblings: List[TaskNode], node_id: int) -> Optional[List[TaskNode]]:
    for node in siblings:
        if node.id == node_id:
            return siblings
        found = _find_container(node.subtasks, node_id)
        if found is not None:
            return found
    return None


def update_node(roots: List[TaskNode], node_id: int, changes: Dict[str, Any]) -> bool:
    """
    Apply field changes to one node in place. Siblings are untouched.

    Returns False when the id is not in the tree.
    """
    protected = PROTECTED_FIELDS.intersection(changes)
    if protected:
        raise ValidationError(f"Cannot change {', '.join(sorted(protected))} through update_node")
    unknown = set(changes) - set(TaskNode.model_fields)
    if unknown:
        raise ValidationError(f"Unknown task fields: {', '.join(sorted(unknown))}")

    node = find_node(roots, node_id)
    if node is None:
        return False

    # Validate the merged result before touching the live node
    merged = parse_input(TaskNode, {**node.model_dump(exclude={"subtasks"}), **changes})
    for key in changes:
        setattr(node, key, getattr(merged, key))
    return True


def remove_node(roots: List[TaskNode], node_id: int) -> bool:
    """Detach a node (and its subtree). Returns False when absent."""
    find_node(roots, node_id)  # duplicate check
    container = _find_container(roots, node_id)
    if container is None:
        return False
    container[:] = [node for node in container if node.id != node_id]
    return True


def descendant_ids(node: TaskNode) -> List[int]:
    """Ids of every node below `node`, depth-first."""
    return [child.id for child in iter_nodes(node.subtasks)]


def validate_tree(roots: List[TaskNode]) -> None:
    """
    Check the level invariants of a whole tree.

    Raises:
        TreeIntegrityError: on duplicate ids, a level 0 node with a parent,
            a child whose level or parent_id does not match its parent, or a
            level 2 node with subtasks
    """
    seen = set()
    for node in iter_nodes(roots):
        if node.id in seen:
            raise TreeIntegrityError(f"Task {node.id} appears more than once")
        seen.add(node.id)

        if node.level == 0 and node.parent_id is not None:
            raise TreeIntegrityError(f"Level 0 task {node.id} has a parent")
        if node.subtasks and node.level >= MAX_TASK_LEVEL:
            raise TreeIntegrityError(f"Level {node.level} task {node.id} has subtasks")
        for child in node.subtasks:
            if child.level != node.level + 1:
                raise TreeIntegrityError(
                    f"Task {child.id} has level {child.level} under level {node.level} task {node.id}"
                )
            if child.parent_id != node.id:
                raise TreeIntegrityError(
                    f"Task {child.id} is nested under {node.id} but points to parent {child.parent_id}"
                )
