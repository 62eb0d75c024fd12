"""
Chain Layer - the ViralScoreReporter settlement contract.

This module provides:
    - ViralScoreReporterClient: epoch reads and signed submissions
    - ViralPair: pool entry submitted for an epoch
    - SubmissionReceipt: confirmed submission
"""

from .abi import VIRAL_SCORE_REPORTER_ABI
from .models import SubmissionReceipt, ViralPair
from .reporter import ViralScoreReporterClient, decode_custom_error

__all__ = [
    "SubmissionReceipt",
    "VIRAL_SCORE_REPORTER_ABI",
    "ViralPair",
    "ViralScoreReporterClient",
    "decode_custom_error",
]
