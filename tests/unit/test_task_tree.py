"""
Tests for the task tree walker (task_tree.py).
"""

from datetime import datetime

import pytest

from opsdesk.database.exceptions import TreeIntegrityError, ValidationError
from opsdesk.models.task import TaskNode, TaskStatus
from opsdesk.utils.task_tree import (
    build_tree,
    iter_nodes,
    find_node,
    update_node,
    remove_node,
    descendant_ids,
    validate_tree,
)

NOW = datetime(2026, 10, 19, 9, 0)


def node(id, level=0, parent_id=None, **fields):
    return TaskNode(id=id, name=fields.pop("name", f"Task {id}"), level=level, parent_id=parent_id,
                    created_at=NOW, updated_at=NOW, **fields)


@pytest.fixture
def tree():
    """
    1
    ├── 2
    │   └── 4
    └── 3
    5
    """
    return build_tree([
        node(1),
        node(2, 1, 1),
        node(3, 1, 1),
        node(4, 2, 2),
        node(5),
    ])


class TestBuildTree:

    def test_nests_by_parent(self, tree):
        assert [n.id for n in tree] == [1, 5]
        assert [n.id for n in tree[0].subtasks] == [2, 3]
        assert [n.id for n in tree[0].subtasks[0].subtasks] == [4]

    def test_missing_parent_becomes_root(self):
        roots = build_tree([node(2, 1, 1), node(4, 2, 2)])

        assert [n.id for n in roots] == [2]
        assert roots[0].subtasks[0].id == 4

    def test_level_mismatch_becomes_root(self):
        roots = build_tree([node(1), node(2, 2, 1)])

        assert [n.id for n in roots] == [1, 2]

    def test_duplicate_ids(self):
        with pytest.raises(TreeIntegrityError):
            build_tree([node(1), node(1)])

    def test_inputs_are_not_mutated(self):
        parent = node(1)
        build_tree([parent, node(2, 1, 1)])

        assert parent.subtasks == []


class TestWalk:

    def test_iter_nodes_depth_first(self, tree):
        assert [n.id for n in iter_nodes(tree)] == [1, 2, 4, 3, 5]

    def test_find_node(self, tree):
        assert find_node(tree, 4).level == 2
        assert find_node(tree, 99) is None

    def test_find_node_duplicate(self, tree):
        # A corrupt tree holding the same id twice
        tree[1].subtasks.append(node(4, 1, 5))

        with pytest.raises(TreeIntegrityError):
            find_node(tree, 4)

    def test_descendant_ids(self, tree):
        assert descendant_ids(tree[0]) == [2, 4, 3]
        assert descendant_ids(tree[1]) == []


class TestUpdateNode:

    def test_updates_in_place(self, tree):
        assert update_node(tree, 4, {"status": "completed", "name": "Mockups"})

        target = find_node(tree, 4)
        assert target.status == TaskStatus.COMPLETED
        assert target.name == "Mockups"
        # Siblings and ancestors are untouched
        assert find_node(tree, 2).status == TaskStatus.NOT_STARTED
        assert find_node(tree, 3).name == "Task 3"

    def test_missing_node(self, tree):
        assert update_node(tree, 99, {"name": "Ghost"}) is False

    def test_structure_fields_are_protected(self, tree):
        with pytest.raises(ValidationError):
            update_node(tree, 2, {"level": 0})
        with pytest.raises(ValidationError):
            update_node(tree, 2, {"parent_id": 5})

    def test_unknown_field(self, tree):
        with pytest.raises(ValidationError):
            update_node(tree, 2, {"colour": "red"})

    def test_invalid_value_leaves_node_unchanged(self, tree):
        with pytest.raises(ValidationError):
            update_node(tree, 2, {"status": "done-ish"})

        assert find_node(tree, 2).status == TaskStatus.NOT_STARTED


class TestRemoveNode:

    def test_removes_subtree(self, tree):
        assert remove_node(tree, 2)

        assert [n.id for n in iter_nodes(tree)] == [1, 3, 5]

    def test_removes_root(self, tree):
        assert remove_node(tree, 5)
        assert [n.id for n in tree] == [1]

    def test_missing(self, tree):
        assert remove_node(tree, 99) is False


class TestValidateTree:

    def test_valid(self, tree):
        validate_tree(tree)

    def test_wrong_parent_id(self, tree):
        tree[0].subtasks[1].parent_id = 5

        with pytest.raises(TreeIntegrityError):
            validate_tree(tree)

    def test_root_with_parent(self, tree):
        tree[1].parent_id = 1

        with pytest.raises(TreeIntegrityError):
            validate_tree(tree)

    def test_level_two_with_children(self, tree):
        tree[0].subtasks[0].subtasks[0].subtasks.append(node(6, 2, 4))

        with pytest.raises(TreeIntegrityError):
            validate_tree(tree)
