from .extractor import Extractor, ExtractionResult

__all__ = ["Extractor", "ExtractionResult"]
