"""
Generation provider - OpenAI-compatible chat completions over HTTP.

The provider is a thin client: it sends one prompt, returns the text and
the reported token usage, and turns every transport or protocol problem
into ProviderFailureError. It never touches credits.
"""

import time

import httpx
from structlog import get_logger

from gateway.config import settings
from gateway.exceptions import ProviderFailureError
from gateway.models.domain import GenerationOptions, ProviderResult, TokenUsage
from gateway.observability.metrics import metrics
from gateway.observability.tracing import trace_operation

logger = get_logger(__name__)

ANALYSIS_PROMPTS = {
    "summary": "Provide a concise summary of the key points in the following document:",
    "sentiment": (
        "Analyze the sentiment of the following document. State whether it is "
        "positive, negative or neutral and explain why:"
    ),
    "keywords": "Extract the most important keywords and key phrases from the following document:",
    "entities": (
        "Identify the named entities (people, organizations, locations, dates) "
        "in the following document:"
    ),
}

SUMMARY_LENGTHS = {
    "short": "2-3 sentences",
    "medium": "1 paragraph (4-6 sentences)",
    "long": "2-3 paragraphs",
}

SUMMARY_STYLES = {
    "paragraph": "in paragraph form",
    "bullet": "as bullet points",
}

CONTENT_SYSTEM_PROMPTS = {
    "article": "You are a professional content writer. Create engaging, well-structured articles.",
    "blog": "You are a creative blogger. Write in a conversational, engaging tone.",
    "social": (
        "You are a social media expert. Create concise, engaging content "
        "optimized for social platforms."
    ),
    "email": "You are a professional email writer. Create clear, effective email content.",
    "story": "You are a creative storyteller. Write compelling narratives with vivid descriptions.",
}


def build_analysis_prompt(text: str, analysis_type: str) -> str:
    """Prompt for document analysis; unknown types fall back to summary."""
    instruction = ANALYSIS_PROMPTS.get(analysis_type, ANALYSIS_PROMPTS["summary"])
    return f"{instruction}\n\n{text}"


def build_summary_prompt(text: str, length: str = "medium", style: str = "bullet") -> str:
    """Prompt for summarization with length and style instructions."""
    length_instruction = SUMMARY_LENGTHS.get(length, SUMMARY_LENGTHS["medium"])
    style_instruction = SUMMARY_STYLES.get(style, SUMMARY_STYLES["bullet"])
    return f"Summarize the following text in {length_instruction} {style_instruction}:\n\n{text}"


class GenerationProvider:
    """Client for an OpenAI-compatible text generation API."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        default_model: str,
        timeout: float,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.default_model = default_model
        self.timeout = timeout
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._http_client

    async def generate(self, prompt: str, options: GenerationOptions | None = None) -> ProviderResult:
        """
        Send one prompt to the provider.

        Raises:
            ProviderFailureError: not configured, transport error, timeout,
                non-2xx status or malformed body
        """
        options = options or GenerationOptions()
        model = options.model or self.default_model

        if not self.api_key:
            logger.error("provider_not_configured")
            raise ProviderFailureError("Generation provider is not configured")

        body = {
            "model": model,
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
            "messages": [
                {"role": "system", "content": options.system_prompt},
                {"role": "user", "content": prompt},
            ],
        }

        started = time.perf_counter()
        with trace_operation("provider.generate", model=model) as span:
            try:
                response = await self.http_client.post(
                    f"{self.base_url}/chat/completions",
                    json=body,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    timeout=self.timeout,
                )
                response.raise_for_status()
                payload = response.json()
                text = payload["choices"][0]["message"]["content"] or ""
            except httpx.TimeoutException as e:
                self._record_failure(started, "provider_timeout", error=str(e))
                raise ProviderFailureError("Generation provider timed out") from e
            except httpx.HTTPStatusError as e:
                self._record_failure(
                    started, "provider_http_error", status=e.response.status_code
                )
                raise ProviderFailureError(
                    f"Generation provider returned {e.response.status_code}"
                ) from e
            except httpx.HTTPError as e:
                self._record_failure(started, "provider_transport_error", error=str(e))
                raise ProviderFailureError("Generation provider unreachable") from e
            except (ValueError, KeyError, IndexError, TypeError) as e:
                self._record_failure(started, "provider_malformed_response", error=str(e))
                raise ProviderFailureError("Generation provider returned a malformed response") from e

            duration = time.perf_counter() - started
            usage = TokenUsage.from_payload(payload.get("usage"))
            total_tokens = usage.resolved_total if usage else None
            span.set_attribute("total_tokens", total_tokens or 0)

        metrics.record_provider_call(success=True, duration=duration)
        logger.info(
            "provider_call_completed",
            model=model,
            duration_ms=int(duration * 1000),
            total_tokens=total_tokens,
        )
        return ProviderResult(
            text=str(text),
            model=str(payload.get("model") or model),
            usage=usage,
            duration_ms=int(duration * 1000),
        )

    async def analyze_document(self, text: str, analysis_type: str = "summary") -> ProviderResult:
        """Run one of the document analyses (summary, sentiment, keywords, entities)."""
        return await self.generate(
            build_analysis_prompt(text, analysis_type),
            GenerationOptions(
                system_prompt="You are an expert document analyst.",
                max_tokens=1500,
                temperature=0.3,
            ),
        )

    async def summarize(self, text: str, length: str = "medium", style: str = "bullet") -> ProviderResult:
        """Summarize text at the requested length and style."""
        return await self.generate(
            build_summary_prompt(text, length, style),
            GenerationOptions(system_prompt="You are an expert summarizer.", max_tokens=1500),
        )

    async def generate_content(self, prompt: str, content_type: str = "article") -> ProviderResult:
        """Write creative content of the given type."""
        return await self.generate(
            prompt,
            GenerationOptions(
                system_prompt=CONTENT_SYSTEM_PROMPTS.get(
                    content_type, CONTENT_SYSTEM_PROMPTS["article"]
                ),
                max_tokens=2000,
                temperature=0.8,
            ),
        )

    def _record_failure(self, started: float, event: str, **fields: object) -> None:
        metrics.record_provider_call(success=False, duration=time.perf_counter() - started)
        logger.error(event, **fields)

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()


def build_generation_provider(http_client: httpx.AsyncClient | None = None) -> GenerationProvider:
    """Build the provider client from settings."""
    if not settings.PROVIDER_API_KEY:
        logger.warning("provider_api_key_missing")
    return GenerationProvider(
        api_key=settings.PROVIDER_API_KEY,
        base_url=settings.provider_base_url,
        default_model=settings.provider_model,
        timeout=settings.provider_timeout_seconds,
        http_client=http_client,
    )
