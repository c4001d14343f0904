# app/utils/pagination.py
from typing import Optional, Tuple

from app.config import settings
from app.core.exceptions import ValidationError

def validate_page(limit: Optional[int], offset: Optional[int]) -> Tuple[int, int]:
    """Apply the default page size and reject out-of-range values"""
    if limit is None:
        limit = settings.DEFAULT_PAGE_SIZE
    offset = offset or 0

    if limit < 1 or limit > settings.MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {settings.MAX_PAGE_SIZE}")
    if offset < 0:
        raise ValidationError("offset must not be negative")
    return limit, offset
