"""Classifiers package."""
from typing import Optional

from networth.config import Settings, get_settings
from networth.services.classifiers.base import AssetCategorizer, CategorizationResult, ClassifiedAsset
from networth.services.classifiers.batch import BatchClassifier, ClassificationBatchResult
from networth.services.classifiers.hybrid import HybridCategorizer
from networth.services.classifiers.identifier import IdentifierCategorizer
from networth.services.classifiers.keyword import KeywordCategorizer
from networth.services.classifiers.llm import LLMCategorizer

_categorizer_instance: Optional[AssetCategorizer] = None


def get_categorizer(settings: Optional[Settings] = None) -> AssetCategorizer:
    """
    Get singleton categorizer.

    Identifier and keyword rules always run; the LLM stage is added when an
    OpenAI key is configured.
    """
    global _categorizer_instance
    if _categorizer_instance is None:
        settings = settings or get_settings()
        llm = None
        if settings.openai_api_key:
            llm = LLMCategorizer(api_key=settings.openai_api_key, model=settings.openai_model)
        _categorizer_instance = HybridCategorizer(
            llm=llm,
            confidence_threshold=settings.llm_confidence_threshold,
        )
    return _categorizer_instance


__all__ = [
    "AssetCategorizer", "CategorizationResult", "ClassifiedAsset",
    "BatchClassifier", "ClassificationBatchResult",
    "HybridCategorizer", "IdentifierCategorizer", "KeywordCategorizer", "LLMCategorizer",
    "get_categorizer",
]
