"""Text-completion client used for optional parsing and forecast enrichment.

Responses are untrusted text. Callers extract a JSON object with
``extract_json_object`` and validate it before using any of it.
"""

import json
import logging
import os
import re
from typing import Any, Protocol

import httpx

from .config import CompletionConfig
from .errors import ExternalServiceError, RateLimitedError
from .models import HistorySummary, Product

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a helpful assistant that answers in JSON format when asked."

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class TextCompletionClient(Protocol):
    """Protocol for the external text-completion collaborator."""

    def complete(
        self,
        prompt: str,
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
    ) -> str: ...


class ChatCompletionClient:
    """Client for an OpenAI-compatible ``/chat/completions`` endpoint."""

    def __init__(
        self,
        api_key: str,
        config: CompletionConfig | None = None,
        http_client: httpx.Client | None = None,
    ):
        """Initialize the client.

        Args:
            api_key: Bearer token for the service
            config: Endpoint and model defaults
            http_client: Optional preconfigured httpx client (used in tests)
        """
        self.api_key = api_key
        self.config = config or CompletionConfig()
        self._http = http_client or httpx.Client()

    @classmethod
    def from_config(cls, config: CompletionConfig) -> "ChatCompletionClient | None":
        """Build a client from config, or None when no API key is set."""
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            logger.info("No %s set; completion features disabled", config.api_key_env)
            return None
        return cls(api_key, config)

    def close(self) -> None:
        self._http.close()

    def complete(
        self,
        prompt: str,
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
    ) -> str:
        """Send a single-turn prompt and return the reply text.

        Raises:
            RateLimitedError: On HTTP 429
            ExternalServiceError: On transport errors, other non-2xx statuses
                or a malformed response body
        """
        model = model or self.config.model
        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.config.temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self.config.max_tokens,
        }
        logger.debug("Calling completion service with model %s", model)

        try:
            response = self._http.post(
                self.config.api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=timeout if timeout is not None else self.config.timeout_s,
            )
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Completion request failed: {e}") from e

        if response.status_code == 429:
            raise RateLimitedError("Completion service rate limit reached")
        if not response.is_success:
            raise ExternalServiceError(
                f"Completion service returned HTTP {response.status_code}"
            )

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ExternalServiceError("Malformed completion response") from e
        if not isinstance(content, str):
            raise ExternalServiceError("Completion response has no text content")
        return content


def extract_json_object(text: Any) -> dict[str, Any] | None:
    """Pull the outermost ``{...}`` span out of free text and parse it.

    Returns:
        The parsed object, or None when there is no parseable JSON object
    """
    if not isinstance(text, str):
        return None
    match = _JSON_OBJECT.search(text)
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def build_consumption_prompt(product: Product, history: HistorySummary) -> str:
    """Build the forecast-refinement prompt for a product and its history."""
    product_view = {
        "name": product.name,
        "category": product.category.value,
        "unit": product.unit.value,
        "quantityCurrent": product.quantity_current,
        "quantityTotal": product.quantity_total,
        "status": product.status.value,
    }
    history_view = {
        "totalLogs": history.total_logs,
        "totalCycles": history.total_cycles,
        "totalConsumed": history.total_consumed,
        "daysSinceFirst": history.days_since_first,
        "dailyRate": history.daily_rate,
        "averageCycleDuration": history.average_cycle_duration,
        "recentLogs": [
            {
                "actionType": log.action_type.value,
                "quantity": log.quantity,
                "createdAt": log.created_at.isoformat(),
            }
            for log in history.logs[:20]
        ],
    }
    return (
        "Analyze this product and its consumption history:\n\n"
        f"Product: {json.dumps(product_view)}\n"
        f"History (last {history.window_months} months): {json.dumps(history_view)}\n\n"
        "Answer ONLY with a JSON object with these fields:\n"
        "{\n"
        '  "predictedDaysLeft": number,     // estimated days until it runs out\n'
        '  "consumptionRate": number,       // daily consumption rate\n'
        '  "recommendedPurchase": number,   // quantity to buy next time\n'
        '  "insights": ["string"],          // short observations\n'
        '  "confidence": "alta" | "media" | "baja",\n'
        '  "notes": "string"\n'
        "}"
    )
