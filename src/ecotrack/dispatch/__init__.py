"""Collection task dispatch."""

from ecotrack.dispatch.engine import DispatchEngine, SweepResult

__all__ = ["DispatchEngine", "SweepResult"]
