# ABOUTME: Public interface for the turn state node factories and their helpers.
# ABOUTME: Exports one handler factory per turn state plus the shared error handlers.

# Helpers
from agentic_rpg.orchestration.nodes.helpers import (
    build_action_log,
    build_state_updates,
    fallback_output,
    find_image_request,
)

# Output nodes
from agentic_rpg.orchestration.nodes.output_nodes import (
    _create_reduce_node,
    _create_render_node,
    _create_safety_node,
)

# Planning nodes
from agentic_rpg.orchestration.nodes.planning_nodes import (
    _create_plan_node,
    _create_tool_exec_node,
)

# Recovery nodes
from agentic_rpg.orchestration.nodes.recovery_nodes import (
    _create_recover_node,
    handle_error,
    recover_error_handler,
)

__all__ = [
    "build_action_log",
    "build_state_updates",
    "fallback_output",
    "find_image_request",
    "_create_plan_node",
    "_create_tool_exec_node",
    "_create_reduce_node",
    "_create_safety_node",
    "_create_render_node",
    "_create_recover_node",
    "handle_error",
    "recover_error_handler",
]
