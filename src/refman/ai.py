"""AI provider access for entry formatting and duplicate classification.

Two providers are supported, both over plain HTTPS with ``httpx``: the
Anthropic Messages API and Groq's OpenAI-compatible chat completions API.
Requests are retried with exponential backoff, except for authentication and
rate-limit failures which are raised immediately.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable

import bibtexparser
import httpx
import msgspec

from .config import AIConfig
from .exceptions import AIError, AIErrorKind, RefmanError
from .parser import parse_bib
from .types import DuplicateCheckResult

logger = logging.getLogger(__name__)

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
GROQ_URL = "https://api.groq.com/openai/v1/chat/completions"
MAX_TOKENS = 2048

# Failures that retrying cannot fix
NON_RETRYABLE = frozenset({AIErrorKind.INVALID_API_KEY, AIErrorKind.RATE_LIMIT})

FORMAT_PROMPT = """Normalize the following BibTeX entry:
1. Use the standard ISO 4 abbreviation for the journal name (e.g. Physical Review Letters -> Phys. Rev. Lett., Nature Communications -> Nat. Commun.)
2. If the DOI can be inferred from the title and authors, add it (format: 10.xxxx/xxxxx)
3. Write authors as "Last, First and Last, First"
4. Remove redundant spaces and line breaks
5. Use a four-digit year
6. Use a double hyphen for page ranges (e.g. 123--456)

Original entry:
{ENTRY}

Output only the normalized BibTeX entry, without any explanation or extra text."""

DUPLICATE_CHECK_PROMPT = """Decide whether the following two BibTeX entries refer to the same work (for example an arXiv preprint and its published version, or the same paper formatted differently).

Entry 1:
{ENTRY1}

Entry 2:
{ENTRY2}

Reply with JSON only, no other text:
{
  "is_duplicate": true or false,
  "keep": "entry1" or "entry2" (if duplicate, keep the more authoritative version, preferring the published one),
  "reason": "short explanation"
}"""

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

Sleep = Callable[[float], Awaitable[None]]


class _ContentBlock(msgspec.Struct):
    type: str
    text: str = ""


class _AnthropicResponse(msgspec.Struct):
    content: list[_ContentBlock]


class _ChatMessage(msgspec.Struct):
    content: str | None = None


class _ChatChoice(msgspec.Struct):
    message: _ChatMessage


class _ChatResponse(msgspec.Struct):
    choices: list[_ChatChoice]


class DuplicateVerdict(msgspec.Struct):
    """JSON verdict expected from the duplicate classifier."""

    is_duplicate: bool
    keep: str = "entry2"
    reason: str = ""


def classify_error(error: BaseException) -> AIError:
    """Map a transport exception onto an :class:`AIError`."""
    if isinstance(error, AIError):
        return error

    if isinstance(error, httpx.TimeoutException):
        return AIError(
            AIErrorKind.TIMEOUT,
            "Request timed out",
            "Check your network connection or increase the timeout setting",
        )

    if isinstance(error, httpx.TransportError):
        return AIError(
            AIErrorKind.NETWORK_ERROR,
            f"Network connection failed: {error}",
            "Check your network connection and proxy settings",
        )

    return AIError(
        AIErrorKind.UNKNOWN,
        str(error) or "An unknown error occurred",
        "Run with -vv for details",
    )


def _status_error(response: httpx.Response, provider: str) -> AIError:
    status = response.status_code
    body = response.text

    if status == 401:
        return AIError(
            AIErrorKind.INVALID_API_KEY,
            f"{provider} API key is invalid or expired",
            "Check the API key in your configuration",
            body,
        )
    if status == 429:
        return AIError(
            AIErrorKind.RATE_LIMIT,
            f"Too many requests to the {provider} API",
            "Wait a moment and try again",
            body,
        )
    if status >= 500:
        return AIError(
            AIErrorKind.API_ERROR,
            f"{provider} service is temporarily unavailable ({status})",
            "Try again later",
            body,
        )
    return AIError(
        AIErrorKind.API_ERROR,
        f"{provider} API error: {status}",
        "Check the request settings or try again later",
        body,
    )


class AIClient:
    """Sends prompts to the configured provider and returns the reply text."""

    def __init__(
        self,
        config: AIConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config
        self._transport = transport
        self._sleep = sleep

    async def complete(self, prompt: str) -> str:
        """Send ``prompt`` and return the text of the reply.

        Raises:
            AIError: If every attempt failed, or on a non-retryable failure
        """
        if not self.config.active_api_key:
            raise AIError(
                AIErrorKind.INVALID_API_KEY,
                f"No API key configured for provider '{self.config.ai_provider}'",
                "Set the API key in refman.json or the environment",
            )

        attempts = max(self.config.max_retries, 1)

        for attempt in range(1, attempts + 1):
            try:
                return await self._request(prompt)
            except (AIError, httpx.HTTPError) as exc:
                error = classify_error(exc)

            if error.kind in NON_RETRYABLE:
                raise error

            logger.warning(
                "AI request failed (attempt %d/%d): %s", attempt, attempts, error.message
            )
            if attempt < attempts:
                await self._sleep(2**attempt)

        raise error

    async def _request(self, prompt: str) -> str:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.timeout), transport=self._transport
        ) as client:
            if self.config.ai_provider == "groq":
                return await self._request_groq(client, prompt)
            return await self._request_anthropic(client, prompt)

    async def _request_anthropic(self, client: httpx.AsyncClient, prompt: str) -> str:
        response = await client.post(
            ANTHROPIC_URL,
            headers={
                "x-api-key": self.config.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
            json={
                "model": self.config.model,
                "max_tokens": MAX_TOKENS,
                "messages": [{"role": "user", "content": prompt}],
            },
        )
        if not response.is_success:
            raise _status_error(response, "Anthropic")

        try:
            data = msgspec.json.decode(response.content, type=_AnthropicResponse)
        except (msgspec.DecodeError, msgspec.ValidationError) as e:
            raise AIError(
                AIErrorKind.PARSE_ERROR,
                f"Unexpected Anthropic response: {e}",
                "Try again",
                response.text,
            ) from e

        text = next((block.text for block in data.content if block.type == "text"), "")
        if not text:
            raise AIError(
                AIErrorKind.PARSE_ERROR,
                "Anthropic response contained no text",
                "Try again",
                response.text,
            )
        return text

    async def _request_groq(self, client: httpx.AsyncClient, prompt: str) -> str:
        response = await client.post(
            GROQ_URL,
            headers={"Authorization": f"Bearer {self.config.groq_api_key}"},
            json={
                "model": self.config.groq_model,
                "messages": [{"role": "user", "content": prompt}],
                "max_tokens": MAX_TOKENS,
                "temperature": 0.1,
            },
        )
        if not response.is_success:
            raise _status_error(response, "Groq")

        try:
            data = msgspec.json.decode(response.content, type=_ChatResponse)
        except (msgspec.DecodeError, msgspec.ValidationError) as e:
            raise AIError(
                AIErrorKind.PARSE_ERROR,
                f"Unexpected Groq response: {e}",
                "Try again",
                response.text,
            ) from e

        content = data.choices[0].message.content if data.choices else None
        if not content:
            raise AIError(
                AIErrorKind.PARSE_ERROR,
                "Groq response contained no text",
                "Try again",
                response.text,
            )
        return content


def clean_bib_response(response: str) -> str:
    """Strip surrounding whitespace and Markdown code fences from a reply."""
    cleaned = response.strip()

    if cleaned.startswith("```bibtex"):
        cleaned = cleaned[len("```bibtex") :]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]

    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]

    return cleaned.strip()


def _extract_single_entry(text: str, response: str) -> str:
    """Return the span of the one BibTeX entry in a cleaned reply.

    Text around the entry, such as an introductory sentence or a stray code
    fence, is dropped. The span must be exactly one entry bibtexparser can read.

    Raises:
        AIError: With kind ``PARSE_ERROR`` if no valid single entry is found
    """
    entries = parse_bib(text).entries
    if len(entries) == 1:
        library = bibtexparser.parse_string(entries[0].raw_text)
        if not library.failed_blocks and len(library.entries) == 1:
            return entries[0].raw_text

    raise AIError(
        AIErrorKind.PARSE_ERROR,
        "AI response is not a single valid BibTeX entry",
        "Try again; if the problem persists check the entry syntax",
        response,
    )


def parse_duplicate_verdict(response: str) -> DuplicateCheckResult:
    """Decode the JSON verdict embedded in a classifier reply.

    The span from the first ``{`` to the last ``}`` is decoded, so surrounding
    prose is tolerated.

    Raises:
        AIError: With kind ``PARSE_ERROR`` if no valid verdict is found
    """
    match = _JSON_OBJECT.search(response)
    if match is None:
        raise AIError(
            AIErrorKind.PARSE_ERROR,
            "No JSON object found in the AI response",
            "Try again; if the problem persists check the entry syntax",
            response,
        )

    try:
        verdict = msgspec.json.decode(match.group(0), type=DuplicateVerdict)
    except (msgspec.DecodeError, msgspec.ValidationError) as e:
        raise AIError(
            AIErrorKind.PARSE_ERROR,
            f"Could not parse the AI response: {e}",
            "Try again; if the problem persists check the entry syntax",
            response,
        ) from e

    return DuplicateCheckResult(
        is_duplicate=verdict.is_duplicate,
        keep_entry="entry1" if verdict.keep == "entry1" else "entry2",
        reason=verdict.reason or "No reason given",
    )


class AIFormatter:
    """High-level AI operations on BibTeX entry text."""

    def __init__(self, config: AIConfig, client: AIClient | None = None) -> None:
        """Create a formatter.

        Args:
            config: Configuration for a new client
            client: Existing client to use instead; it keeps its own configuration
        """
        self._client = client if client is not None else AIClient(config)

    @property
    def config(self) -> AIConfig:
        return self._client.config

    def update_config(self, config: AIConfig) -> None:
        """Switch to a new configuration; suitable as a ConfigStore callback."""
        logger.debug("AI formatter now using provider %s", config.ai_provider)
        self._client.config = config

    async def format_entry(self, raw_entry: str) -> str:
        """Return the AI-normalized version of one entry.

        Raises:
            AIError: If the request fails or the reply is not a single entry
        """
        response = await self._client.complete(FORMAT_PROMPT.replace("{ENTRY}", raw_entry))
        return _extract_single_entry(clean_bib_response(response), response)

    async def format_entries(
        self,
        raw_entries: list[str],
        on_progress: Callable[[int, int], None] | None = None,
    ) -> list[str]:
        """Format entries one at a time; failed entries are returned unchanged."""
        results: list[str] = []
        total = len(raw_entries)

        for index, raw_entry in enumerate(raw_entries, start=1):
            if on_progress:
                on_progress(index, total)
            try:
                results.append(await self.format_entry(raw_entry))
            except RefmanError as e:
                logger.warning("Formatting entry %d/%d failed: %s", index, total, e)
                results.append(raw_entry)

        return results

    async def check_duplicate(self, entry1: str, entry2: str) -> DuplicateCheckResult:
        """Ask the classifier whether two entries describe the same work.

        Raises:
            AIError: If the request fails or the verdict cannot be parsed
        """
        prompt = DUPLICATE_CHECK_PROMPT.replace("{ENTRY1}", entry1).replace("{ENTRY2}", entry2)
        response = await self._client.complete(prompt)
        return parse_duplicate_verdict(response)
