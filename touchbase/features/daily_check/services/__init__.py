"""
Service layer for the daily check feature.
"""

from .batch_processor import BatchPreparationError, BatchProcessor
from .ledger import LedgerError, ProcessingLedger
from .suggestion_service import SuggestionService, build_prompt

__all__ = [
    "BatchPreparationError",
    "BatchProcessor",
    "LedgerError",
    "ProcessingLedger",
    "SuggestionService",
    "build_prompt",
]
