"""Pull side of the bidirectional sync engine."""

from src.pull.service import PullResult, PullSync


__all__ = ["PullResult", "PullSync"]
