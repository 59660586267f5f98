"""Source extractors."""

from .base import BaseExtractor, ExtractionResult
from .soql_extractor import SoqlExtractor

__all__ = [
    "BaseExtractor",
    "ExtractionResult",
    "SoqlExtractor",
]
