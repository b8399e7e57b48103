"""Error taxonomy for the report lifecycle core."""

from __future__ import annotations


class EcoTrackError(Exception):
    """Base class for all core errors."""


class NotFound(EcoTrackError):
    """Unknown record id."""


class Forbidden(EcoTrackError):
    """Actor role is not permitted for the requested edge."""


class InvalidTransition(EcoTrackError):
    """Requested edge is not part of the state graph."""


class Conflict(EcoTrackError):
    """Optimistic concurrency loss; re-read and retry."""


class NoAgentAvailable(EcoTrackError):
    """No active pickup agent; dispatch is deferred."""


class DownstreamUnavailable(EcoTrackError):
    """A notification or storage collaborator failed."""
