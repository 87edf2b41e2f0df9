"""Utility modules for OpsDesk."""

from .datetime_utils import (
    get_local_tz,
    get_local_now,
    get_local_today,
    end_of_week,
    inclusive_days,
)

from .permissions import (
    UserContext,
    require_superadmin,
)

from .validation import (
    parse_input,
    format_validation_error,
    contains_pattern,
)

from .task_tree import (
    build_tree,
    find_node,
    update_node,
    remove_node,
    iter_nodes,
    descendant_ids,
    validate_tree,
)

__all__ = [
    # Datetime utilities
    "get_local_tz",
    "get_local_now",
    "get_local_today",
    "end_of_week",
    "inclusive_days",
    # Permissions
    "UserContext",
    "require_superadmin",
    # Validation
    "parse_input",
    "format_validation_error",
    "contains_pattern",
    # Task tree
    "build_tree",
    "find_node",
    "update_node",
    "remove_node",
    "iter_nodes",
    "descendant_ids",
    "validate_tree",
]
