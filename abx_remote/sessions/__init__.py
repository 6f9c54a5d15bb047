"""
Listening test sessions.

Usage:
    from abx_remote.sessions import ABXTestController, ABXConfig, Choice
    abx = ABXTestController(sync, scheduler)
    abx.start(ABXConfig(preset_a=1, preset_b=2, total_trials=10))
    abx.present(Choice.X)
    abx.submit_guess(Choice.A)
"""
from .ab import ABConfig, ABPhase, ABResult, ABSession, ABTestController
from .abx import ABXConfig, ABXPhase, ABXResult, ABXSession, ABXTestController, Choice

__all__ = [
    "ABConfig",
    "ABPhase",
    "ABResult",
    "ABSession",
    "ABTestController",
    "ABXConfig",
    "ABXPhase",
    "ABXResult",
    "ABXSession",
    "ABXTestController",
    "Choice",
]
