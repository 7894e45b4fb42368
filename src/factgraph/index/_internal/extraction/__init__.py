"""Fact extraction: language registry and query driver."""

from factgraph.index._internal.extraction.driver import (
    CodeQLExtractor,
    ExtractionResult,
    FactExtractor,
)
from factgraph.index._internal.extraction.registry import (
    BUILD_ORDER,
    FACT_SPECS,
    LANGUAGE_CAPABILITIES,
    FactSpec,
    LanguageCapability,
    get_capability,
    supported_languages,
)

__all__ = [
    "CodeQLExtractor",
    "ExtractionResult",
    "FactExtractor",
    "BUILD_ORDER",
    "FACT_SPECS",
    "LANGUAGE_CAPABILITIES",
    "FactSpec",
    "LanguageCapability",
    "get_capability",
    "supported_languages",
]
