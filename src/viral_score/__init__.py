"""
Viral Score Oracle.

Computes engagement-based "viral" scores for social tokens, derives pair
scores, commits them into Merkle checkpoints and settles hourly epochs
on the ViralScoreReporter contract.
"""

__version__ = "0.1.0"
