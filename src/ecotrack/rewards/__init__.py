"""Reward engine."""

from ecotrack.rewards.engine import RewardEngine

__all__ = ["RewardEngine"]
