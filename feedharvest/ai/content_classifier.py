"""
Primary Reporting Classifier
============================

Decides whether an article is the outlet's own reporting or a rewrite of
another outlet's story, and names the original source when it is not.

Obvious attributions ("According to Reuters, ...") and strong
self-references are settled by rules; everything else goes to an OpenAI
chat model that answers in JSON.
"""

import asyncio
import json
import time
from typing import Optional, Tuple

import openai
from openai import AsyncOpenAI

from ..models import ClassificationVerdict
from ..utils.exceptions import ClassifierError, ErrorCode
from ..utils.logging import get_logger_for_component

SYSTEM_PROMPT = (
    "You are an expert journalist and content analyst. Analyze news articles to "
    "determine if they are primary reporting or reference other sources. "
    "Always respond with valid JSON only."
)

ANALYSIS_PROMPT = """You are a journalism expert. Analyze this news article and determine if it's PRIMARY REPORTING or REFERENCED REPORTING.

**REFERENCED REPORTING** (mark as false) - Article is primarily based on external sources:
- Explicitly cites OTHER news organizations as the main source of information
- Lead paragraph or headline attributes the story to external sources
- Contains phrases like "According to [External Source]", "[Source] reports", "As reported by [Source]"
- Main facts come from another outlet's reporting, not original work
- Story would not exist without the external source's original reporting

**PRIMARY REPORTING** (mark as true) - Outlet did original journalism:
- Original interviews, investigation, or direct coverage by the outlet's staff
- Contains exclusive information, original quotes, or firsthand reporting
- Self-references: outlet references its own reporters, coverage, or internal sources
- Original analysis or commentary on events, even if mentioning other sources

**DECISION PRIORITY:**
1. Look for explicit attribution to external sources in headlines/lead paragraphs
2. Check if the main story facts come from external sources vs. original reporting
3. Self-references to same outlet = PRIMARY; references to different outlets = REFERENCED

**EXAMPLES:**
- "According to Reuters, the company announced..." -> {{"is_primary_reporting": false, "original_source_name": "Reuters"}}
- "As first reported by Bloomberg, the deal was..." -> {{"is_primary_reporting": false, "original_source_name": "Bloomberg"}}
- "Sources tell multiple outlets that..." -> {{"is_primary_reporting": false, "original_source_name": "Unknown"}}
- "Our reporter spoke with the mayor..." -> {{"is_primary_reporting": true, "original_source_name": null}}
- "Analysis: While Reuters reported X, our investigation shows..." -> {{"is_primary_reporting": true, "original_source_name": null}}

Article to analyze:
{content}

Respond with ONLY this JSON format (no extra text):
{{
  "is_primary_reporting": true,
  "original_source_name": null,
  "confidence": 0.95,
  "reasoning": "Brief explanation of your decision"
}}

For referenced reporting, set "original_source_name" to the main source name (e.g. "Reuters", "BBC News", "CNN") or "Unknown" if no specific source is identified.
For primary reporting, set "original_source_name" to null."""

# Checked against the opening of the prepared text only
REFERENCED_INDICATORS = (
    ("according to reuters,", "Reuters"),
    ("reuters reports that", "Reuters"),
    ("reuters reported that", "Reuters"),
    ("according to cnn,", "CNN"),
    ("cnn reports that", "CNN"),
    ("cnn reported that", "CNN"),
    ("according to bbc,", "BBC News"),
    ("bbc reports that", "BBC News"),
    ("bbc reported that", "BBC News"),
    ("according to ap,", "Associated Press"),
    ("associated press reports", "Associated Press"),
    ("according to bloomberg,", "Bloomberg"),
    ("bloomberg reports that", "Bloomberg"),
    ("bloomberg reported that", "Bloomberg"),
    ("according to wsj,", "Wall Street Journal"),
    ("according to the wall street journal,", "Wall Street Journal"),
    ("wall street journal reports", "Wall Street Journal"),
    ("according to the new york times,", "New York Times"),
    ("new york times reports", "New York Times"),
    ("first reported by", "Unknown"),
    ("originally reported by", "Unknown"),
)

SELF_REFERENCE_INDICATORS = (
    "our exclusive interview",
    "our investigation found",
    "our investigation revealed",
    "our reporters found",
    "our team discovered",
    "we exclusively learned",
    "we can exclusively report",
    "exclusive: ",
    "breaking: our ",
)

REFERENCE_WINDOW = 200
MIN_ANALYSIS_CHARS = 10


def prepare_analysis_text(
    title: str,
    description: Optional[str] = None,
    content: Optional[str] = None,
    full_content: Optional[str] = None,
    max_content_chars: int = 1500,
) -> str:
    """Join title, description and body (full content preferred) for analysis."""
    parts = []
    if title:
        parts.append(f"Title: {title}")
    if description:
        parts.append(f"Description: {description}")

    body = full_content or content or ""
    if body:
        if len(body) > max_content_chars:
            body = body[:max_content_chars] + "..."
        parts.append(f"Content: {body}")

    return "\n\n".join(parts)


def rule_based_verdict(text: str) -> Optional[ClassificationVerdict]:
    """Settle unmistakable cases without calling the model."""
    lowered = text.lower()
    opening = lowered[:REFERENCE_WINDOW]

    for phrase, source in REFERENCED_INDICATORS:
        if phrase in opening:
            return ClassificationVerdict(
                is_primary_reporting=False,
                original_source_name=source,
                confidence=0.9,
                reasoning=f"Rule-based detection: explicit attribution '{phrase}'",
            )

    for phrase in SELF_REFERENCE_INDICATORS:
        if phrase in lowered:
            return ClassificationVerdict(
                is_primary_reporting=True,
                confidence=0.9,
                reasoning=f"Rule-based detection: strong self-reference '{phrase}'",
            )

    return None


def parse_verdict(response_text: str) -> ClassificationVerdict:
    """Parse the model's JSON answer, tolerating text around the object.

    Raises:
        ClassifierError: If no JSON object can be decoded
    """
    start = response_text.find("{")
    end = response_text.rfind("}")
    if start == -1 or end < start:
        raise ClassifierError(
            "No JSON found in classifier response",
            provider="openai",
            error_code=ErrorCode.AI_INVALID_RESPONSE,
            context={"response": response_text[:200]},
        )

    try:
        payload = json.loads(response_text[start : end + 1])
    except json.JSONDecodeError as e:
        raise ClassifierError(
            f"Failed to parse classifier JSON: {e}",
            provider="openai",
            error_code=ErrorCode.AI_INVALID_RESPONSE,
        )

    if not isinstance(payload, dict):
        raise ClassifierError(
            "Classifier response is not a JSON object",
            provider="openai",
            error_code=ErrorCode.AI_INVALID_RESPONSE,
        )

    source = payload.get("original_source_name")
    return ClassificationVerdict(
        is_primary_reporting=bool(payload.get("is_primary_reporting", False)),
        original_source_name=source if isinstance(source, str) else None,
        confidence=payload.get("confidence", 0.5),
        reasoning=str(payload.get("reasoning") or ""),
    )


class ContentClassifier:
    """OpenAI-backed primary-reporting classifier."""

    def __init__(
        self,
        api_key: str,
        model_name: str = "gpt-4o-mini",
        temperature: float = 0.3,
        max_tokens: int = 200,
        max_content_chars: int = 1500,
        timeout: float = 30.0,
        client: Optional[AsyncOpenAI] = None,
    ):
        """Initialize classifier.

        Args:
            api_key: OpenAI API key
            model_name: Chat model to use
            temperature: Sampling temperature
            max_tokens: Response token cap
            max_content_chars: Body characters included in the prompt
            timeout: Request timeout in seconds
            client: Preconfigured client (tests)

        Raises:
            ClassifierError: If no API key is given
        """
        if not api_key and client is None:
            raise ClassifierError(
                "OpenAI API key is required",
                provider="openai",
                error_code=ErrorCode.AI_PROVIDER_UNAVAILABLE,
                recoverable=False,
            )

        self.model_name = model_name
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_content_chars = max_content_chars
        self.client = client or AsyncOpenAI(api_key=api_key, timeout=timeout)
        self.logger = get_logger_for_component("classifier")

    async def classify(
        self,
        title: str,
        description: Optional[str] = None,
        content: Optional[str] = None,
        full_content: Optional[str] = None,
        url: Optional[str] = None,
    ) -> ClassificationVerdict:
        """Classify one article.

        Raises:
            ClassifierError: On API failure or an unusable response
        """
        text = prepare_analysis_text(
            title, description, content, full_content, self.max_content_chars
        )

        if len(text) < MIN_ANALYSIS_CHARS:
            return ClassificationVerdict(
                is_primary_reporting=True,
                confidence=0.1,
                reasoning="Insufficient content for analysis",
            )

        verdict = rule_based_verdict(text)
        if verdict is not None:
            self.logger.debug(f"Rule-based verdict for {url or title}: {verdict.reasoning}")
            return verdict

        start_time = time.time()
        response_text, tokens_used = await self._complete(ANALYSIS_PROMPT.format(content=text))
        verdict = parse_verdict(response_text)

        self.logger.debug(
            f"Classified {url or title}: primary={verdict.is_primary_reporting} "
            f"source={verdict.original_source_name} confidence={verdict.confidence:.2f} "
            f"tokens={tokens_used} time={int((time.time() - start_time) * 1000)}ms"
        )
        return verdict

    async def _complete(self, prompt: str) -> Tuple[str, Optional[int]]:
        try:
            response = await self.client.chat.completions.create(
                model=self.model_name,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except openai.APITimeoutError as e:
            raise ClassifierError(
                f"OpenAI request timed out: {e}",
                provider="openai",
                error_code=ErrorCode.AI_TIMEOUT,
            )
        except openai.APIStatusError as e:
            raise ClassifierError(
                f"OpenAI API error: {e.status_code} - {e.message}",
                provider="openai",
                error_code=ErrorCode.AI_API_ERROR,
                recoverable=e.status_code == 429 or e.status_code >= 500,
            )
        except (openai.APIError, asyncio.TimeoutError) as e:
            raise ClassifierError(
                f"OpenAI request failed: {e}",
                provider="openai",
                error_code=ErrorCode.AI_API_ERROR,
            )

        if not response.choices or not response.choices[0].message.content:
            raise ClassifierError(
                "Empty classifier response",
                provider="openai",
                error_code=ErrorCode.AI_INVALID_RESPONSE,
            )

        usage = getattr(response, "usage", None)
        tokens_used = getattr(usage, "total_tokens", None) if usage else None
        return response.choices[0].message.content, tokens_used
