"""
LLM categorizer for holdings.

Uses OpenAI GPT-4o-mini with a JSON response to pick an asset class and
subclass from the active taxonomy.
"""
import json
from typing import Optional

import structlog
from openai import AsyncOpenAI, OpenAIError

from networth.exceptions import ExternalServiceError
from networth.services.classifiers.base import AssetCategorizer, CategorizationResult
from networth.services.extraction.base import RawAsset
from networth.services.taxonomy_service import Taxonomy

logger = structlog.get_logger(__name__)


class LLMCategorizer(AssetCategorizer):
    """
    LLM-based categorizer using OpenAI chat completions.

    The model only sees pairs from the supplied taxonomy; anything else it
    returns is rejected downstream by the batch classifier.
    """

    name = "llm"

    MODEL = "gpt-4o-mini"
    MAX_TOKENS = 256
    TEMPERATURE = 0.1

    ISIN_HINTS = {
        "INE": "INE prefix indicates a company-issued security",
        "INF": "INF prefix indicates mutual fund units",
        "IN0": "IN0 prefix indicates a government security",
        "IN9": "IN9 prefix indicates a government or public sector bond",
    }

    SYSTEM_PROMPT = """You are a personal finance expert. Classify an investment holding into exactly one asset class and subclass from the list provided.

Respond in JSON format:
{
  "asset_class": "equity|debt|cash|real_estate|other",
  "asset_subclass": "subclass code from the list",
  "confidence": 0.0-1.0,
  "reasoning": "Brief explanation"
}"""

    def __init__(
        self,
        api_key: str,
        model: str = MODEL,
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Initialize LLM categorizer.

        Args:
            api_key: OpenAI API key.
            model: Chat model name.
            client: Pre-built client, mainly for tests.
        """
        self._client = client or AsyncOpenAI(api_key=api_key)
        self._model = model
        self._call_count = 0
        self._total_tokens = 0

    @property
    def call_count(self) -> int:
        return self._call_count

    def _build_prompt(self, asset: RawAsset, taxonomy: Taxonomy) -> str:
        prompt = f'Classify this holding: "{asset.name}"'
        prompt += f"\nCurrent value: {asset.current_value:.2f}"
        if asset.isin:
            prompt += f"\nISIN: {asset.isin}"
            hint = self.ISIN_HINTS.get(asset.isin[:3].upper())
            if hint:
                prompt += f" ({hint})"
        if asset.ticker_symbol:
            prompt += f"\nTicker: {asset.ticker_symbol}"
        if asset.exchange:
            prompt += f"\nExchange: {asset.exchange}"
        if asset.notes:
            prompt += f"\nNotes: {asset.notes}"

        prompt += "\n\nAllowed subclasses (asset_class/subclass_code: name):"
        for entry in taxonomy:
            prompt += f"\n- {entry.asset_class.value}/{entry.subclass_code}: {entry.display_name}"

        prompt += "\n\nRespond with JSON only."
        return prompt

    def _parse_response(self, content: str) -> Optional[CategorizationResult]:
        """
        Parse LLM response JSON.

        Returns:
            CategorizationResult, or None if the response is unusable.
        """
        try:
            data = json.loads(content or "{}")
        except json.JSONDecodeError:
            logger.warning("Failed to parse LLM response", content=(content or "")[:100])
            return None

        asset_class = data.get("asset_class")
        subclass = data.get("asset_subclass")
        if not asset_class or not subclass:
            return None

        try:
            confidence = float(data.get("confidence", 0.5))
        except (TypeError, ValueError):
            confidence = 0.5

        return CategorizationResult(
            asset_class=str(asset_class).lower(),
            asset_subclass=str(subclass).lower(),
            confidence=min(max(confidence, 0.0), 1.0),
            reasoning=data.get("reasoning"),
            method=self.name,
        )

    async def categorize(self, asset: RawAsset, taxonomy: Taxonomy) -> Optional[CategorizationResult]:
        """
        Classify one holding.

        Raises:
            ExternalServiceError: If the OpenAI call fails.
        """
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": self.SYSTEM_PROMPT},
                    {"role": "user", "content": self._build_prompt(asset, taxonomy)},
                ],
                max_tokens=self.MAX_TOKENS,
                temperature=self.TEMPERATURE,
                response_format={"type": "json_object"},
            )
        except OpenAIError as e:
            logger.error("LLM categorization failed", error=str(e), name=asset.name[:50])
            raise ExternalServiceError("openai", message="Asset categorization service failed") from e

        self._call_count += 1
        if response.usage:
            self._total_tokens += response.usage.total_tokens

        result = self._parse_response(response.choices[0].message.content)
        logger.info(
            "LLM categorization complete",
            name=asset.name[:50],
            asset_class=result.asset_class if result else None,
            asset_subclass=result.asset_subclass if result else None,
            confidence=result.confidence if result else None,
        )
        return result
