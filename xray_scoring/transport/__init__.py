"""Transport module: User action callbacks and the scoring engine."""

from xray_scoring.transport.actions import UserActions, ScoringActions
from xray_scoring.transport.engine import ScoringEngine

__all__ = ["UserActions", "ScoringActions", "ScoringEngine"]
