# app/models/validation.py
from typing import Optional
from pydantic import BaseModel

class MemoryValidationResult(BaseModel):
    correct: bool
    skipped: bool = False  # Nothing to recall yet, the remote check was never made
    reason: Optional[str] = None  # Why the check failed locally, e.g. "count_mismatch"
