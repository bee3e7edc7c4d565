from .config import FlashSettings, flash_settings
from .schemas.response import PaginatedResult, PaginationMeta, parse_ordering

__all__ = [
    "FlashSettings",
    "PaginatedResult",
    "PaginationMeta",
    "flash_settings",
    "parse_ordering",
]
