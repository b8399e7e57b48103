"""Report status machines."""

from ecotrack.lifecycle.status_machine import (
    ACTIONABLE_STATUS,
    AGENT_COMPLETION_STATUS,
    Edge,
    allowed_targets,
    find_edge,
    parse_status,
    status_enum_for,
    validate_transition,
)

__all__ = [
    "ACTIONABLE_STATUS",
    "AGENT_COMPLETION_STATUS",
    "Edge",
    "allowed_targets",
    "find_edge",
    "parse_status",
    "status_enum_for",
    "validate_transition",
]
