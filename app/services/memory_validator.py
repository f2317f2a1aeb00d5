# app/services/memory_validator.py
import logging
from typing import List, Sequence

from app.models.validation import MemoryValidationResult

logger = logging.getLogger("app.services.memory_validator")  # Logger for this module

def parse_recalled_items(recalled_text: str | None) -> List[str]:
    """One item per line; surrounding whitespace and blank lines are dropped."""
    if not recalled_text:
        return []
    return [line.strip() for line in recalled_text.split("\n") if line.strip()]

async def validate_memory(recalled: Sequence[str], actual: Sequence[str], ai_service) -> MemoryValidationResult:
    """
    Decides whether `recalled` reproduces `actual` in order.

    1. Nothing to recall yet (first turn): passes without a remote call.
    2. Different number of items: fails without a remote call.
    3. Otherwise the remote semantic check decides, so typos and paraphrases are tolerated.

    A failure of the remote check is NOT a failed memory: RemoteServiceError propagates to the caller.
    """
    if not actual:
        return MemoryValidationResult(correct=True, skipped=True)

    if len(recalled) != len(actual):
        logger.info(f"Memory check failed on count: recalled {len(recalled)} of {len(actual)} items.")
        return MemoryValidationResult(correct=False, reason="count_mismatch")

    correct = await ai_service.validate_memory(list(recalled), list(actual))
    logger.debug(f"Remote memory check for {len(actual)} items returned correct={correct}.")
    return MemoryValidationResult(correct=correct, reason=None if correct else "mismatch")
