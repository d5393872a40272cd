"""AI provider clients: Shapes (SDK and raw HTTP) and Gemini."""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

import aiohttp
import httpx
import openai
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from tenshi_bot.config import BotSettings, Config
from tenshi_bot.core.content import ContentPart, PartKind
from tenshi_bot.core.context_store import Role, Turn
from tenshi_bot.core.logging import (
    get_session_stats,
    log_llm_call,
    log_llm_response,
    log_llm_round,
)
from tenshi_bot.errors import (
    ProviderAuthorizationError,
    ProviderError,
    ProviderTransientError,
)
from tenshi_bot.personalities import get_tenshi_prompt

logger = logging.getLogger(__name__)

# HTTP statuses that mean the credential itself was refused
AUTH_STATUSES = (401, 403)

# How many context turns the Gemini backend sees
GEMINI_CONTEXT_TURNS = 5


@dataclass(frozen=True)
class UserCredential:
    """A linked user's token, presented instead of the bot's shared key."""

    token: str
    app_id: str


@dataclass
class ProviderRequest:
    """Everything a provider needs to produce one reply."""

    conversation_id: str
    caller_id: str
    content: list[ContentPart]
    history: list[Turn] = field(default_factory=list)  # Oldest first, includes this turn
    credential: UserCredential | None = None


class ProviderClient(Protocol):
    """A single AI backend call: request in, reply text out.

    Implementations raise ProviderAuthorizationError when the credential
    is refused and ProviderTransientError for every other failure.
    """

    name: str

    async def generate(self, request: ProviderRequest) -> str: ...


def format_user_id(user_id: str) -> str:
    return f"discord-user-{user_id}"


def format_channel_id(channel_id: str) -> str:
    return f"discord-channel-{channel_id}"


def shapes_headers(request: ProviderRequest) -> dict[str, str]:
    """Identity headers for a Shapes call.

    A linked user's token and app id ride along in X-User-Auth and
    X-App-ID; the shared API key stays in Authorization.
    """
    headers = {
        "X-User-Id": format_user_id(request.caller_id),
        "X-Channel-Id": format_channel_id(request.conversation_id),
    }
    if request.credential is not None:
        headers["X-User-Auth"] = request.credential.token
        headers["X-App-ID"] = request.credential.app_id
    return headers


def shapes_messages(request: ProviderRequest) -> list[dict[str, Any]]:
    """Shapes keeps its own per-channel memory, so only the new turn is sent."""
    return [{"role": "user", "content": [part.to_api() for part in request.content]}]


def extract_completion_text(data: Any) -> str:
    """Pull the reply text out of a chat-completions JSON body."""
    try:
        text = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise ProviderTransientError(
            f"Unexpected response shape: {str(data)[:200]}", provider="shapes"
        ) from e
    if not isinstance(text, str) or not text.strip():
        raise ProviderTransientError("Empty response from Shapes API", provider="shapes")
    return text


class ShapesSDKClient:
    """Shapes API through the OpenAI-compatible SDK."""

    name = "shapes/openai"

    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        settings: BotSettings,
        timeout: float = 60.0,
    ):
        self._api_key = api_key
        self._settings = settings
        self._openai = openai.AsyncOpenAI(
            base_url=base_url,
            api_key=api_key or "unused",
            timeout=timeout,
            max_retries=0,
        )

    async def close(self) -> None:
        await self._openai.close()

    async def generate(self, request: ProviderRequest) -> str:
        if not self._api_key and request.credential is None:
            raise ProviderTransientError("Shapes API key not configured", provider=self.name)

        model = f"shapesinc/{self._settings.shape_username}"
        messages = shapes_messages(request)
        headers = shapes_headers(request)

        log_llm_call(operation="Shapes (SDK)", model=model, messages=messages, headers=headers)

        extra_headers: dict[str, Any] = dict(headers)
        if not self._api_key:
            # The SDK needs a key at construction; without one, send no Authorization
            extra_headers["Authorization"] = openai.Omit()

        start = time.perf_counter()
        try:
            response = await self._openai.chat.completions.create(
                model=model,
                messages=messages,
                extra_headers=extra_headers,
            )
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise ProviderAuthorizationError(
                f"Shapes rejected credential: {e}", provider=self.name, status=e.status_code
            ) from e
        except openai.APIStatusError as e:
            raise ProviderTransientError(
                f"Shapes API error: {e}", provider=self.name, status=e.status_code
            ) from e
        except openai.APIError as e:
            raise ProviderTransientError(f"Shapes request failed: {e}", provider=self.name) from e

        elapsed_ms = (time.perf_counter() - start) * 1000
        try:
            text = response.choices[0].message.content if response.choices else None
        except (AttributeError, IndexError, TypeError) as e:
            raise ProviderTransientError(
                f"Unexpected response shape: {str(response)[:200]}", provider=self.name
            ) from e
        if not isinstance(text, str) or not text.strip():
            raise ProviderTransientError("Empty response from Shapes API", provider=self.name)

        usage = getattr(response, "usage", None)
        log_llm_round(
            component=self.name,
            model=model,
            tokens_in=getattr(usage, "prompt_tokens", None),
            tokens_out=getattr(usage, "completion_tokens", None),
            elapsed_ms=elapsed_ms,
        )
        log_llm_response(operation="Shapes (SDK)", response_text=text)
        return text


class ShapesHTTPClient:
    """Shapes API over plain HTTP, same request and reply as the SDK client."""

    name = "shapes/http"

    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        settings: BotSettings,
        timeout: float = 60.0,
    ):
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._settings = settings
        self._timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            )
        return self._session

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def generate(self, request: ProviderRequest) -> str:
        if not self._api_key and request.credential is None:
            raise ProviderTransientError("Shapes API key not configured", provider=self.name)

        model = f"shapesinc/{self._settings.shape_username}"
        body = {"model": model, "messages": shapes_messages(request)}
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        headers.update(shapes_headers(request))

        log_llm_call(
            operation="Shapes (HTTP)", model=model, messages=body["messages"], headers=headers
        )

        start = time.perf_counter()
        try:
            session = await self._get_session()
            async with session.post(
                f"{self._base_url}/chat/completions", json=body, headers=headers
            ) as response:
                if response.status in AUTH_STATUSES:
                    detail = await response.text()
                    raise ProviderAuthorizationError(
                        f"Shapes rejected credential: HTTP {response.status} {detail[:200]}",
                        provider=self.name,
                        status=response.status,
                    )
                if response.status != 200:
                    detail = await response.text()
                    raise ProviderTransientError(
                        f"Shapes API error: HTTP {response.status} {detail[:200]}",
                        provider=self.name,
                        status=response.status,
                    )
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise ProviderTransientError(f"Shapes request failed: {e!r}", provider=self.name) from e

        text = extract_completion_text(data)
        elapsed_ms = (time.perf_counter() - start) * 1000
        usage = data.get("usage")
        usage = usage if isinstance(usage, dict) else {}
        log_llm_round(
            component=self.name,
            model=model,
            tokens_in=usage.get("prompt_tokens"),
            tokens_out=usage.get("completion_tokens"),
            elapsed_ms=elapsed_ms,
        )
        log_llm_response(operation="Shapes (HTTP)", response_text=text)
        return text


class ShapesProvider:
    """The Shapes backend, served by two interchangeable client implementations.

    The implementation named by the runtime settings goes first. A
    transient failure is retried once on the other implementation; an
    authorization failure is raised straight away.
    """

    name = "shapes"

    def __init__(
        self,
        sdk_client: ProviderClient,
        http_client: ProviderClient,
        settings: BotSettings,
        is_logging_enabled: Callable[[], bool] = lambda: True,
    ):
        self._clients = {"openai": sdk_client, "http": http_client}
        self._settings = settings
        self._is_logging_enabled = is_logging_enabled

    def _ordered_clients(self) -> tuple[ProviderClient, ProviderClient]:
        first = self._settings.shapes_client
        second = "http" if first == "openai" else "openai"
        return self._clients[first], self._clients[second]

    async def generate(self, request: ProviderRequest) -> str:
        first, second = self._ordered_clients()
        try:
            text = await first.generate(request)
        except ProviderTransientError as e:
            if self._is_logging_enabled():
                logger.warning(f"SHAPES_CLIENT_RETRY: {first.name} failed ({e}), trying {second.name}")
            text = await second.generate(request)
        get_session_stats().increment_api_call(self.name)
        return text

    async def close(self) -> None:
        for client in self._clients.values():
            close = getattr(client, "close", None)
            if close is not None:
                await close()


class GeminiProvider:
    """Gemini backend, speaking as the Tenshi persona over recent context."""

    name = "gemini"

    def __init__(
        self,
        api_key: str | None,
        model: str = "gemini-2.0-flash",
        persona_name: str = "tenshi",
    ):
        self._client = genai.Client(api_key=api_key) if api_key else None
        self._model = model
        self._system_prompt = get_tenshi_prompt(persona_name)

    def _part_text(self, part: ContentPart) -> str:
        if part.kind == PartKind.TEXT:
            return part.value
        label = "image" if part.kind == PartKind.IMAGE else "audio"
        return f"[{label}: {part.value}]"

    def _build_contents(self, history: list[Turn]) -> list[types.Content]:
        contents = []
        for turn in history[-GEMINI_CONTEXT_TURNS:]:
            role = "model" if turn.role == Role.ASSISTANT else "user"
            text = "\n".join(self._part_text(p) for p in turn.content)
            contents.append(types.Content(role=role, parts=[types.Part.from_text(text=text)]))
        return contents

    async def generate(self, request: ProviderRequest) -> str:
        if self._client is None:
            raise ProviderTransientError("Gemini API key not available", provider=self.name)

        history = request.history or [Turn.user(request.content, request.caller_id)]
        contents = self._build_contents(history)

        log_llm_call(
            operation="Gemini",
            model=self._model,
            system_prompt=self._system_prompt,
            messages=[c.model_dump(exclude_none=True) for c in contents],
            config={"temperature": 0.9, "max_output_tokens": 200},
        )

        start = time.perf_counter()
        try:
            response = await self._client.aio.models.generate_content(
                model=self._model,
                contents=contents,
                config=types.GenerateContentConfig(
                    system_instruction=self._system_prompt,
                    temperature=0.9,
                    max_output_tokens=200,
                ),
            )
        except genai_errors.APIError as e:
            if e.code in AUTH_STATUSES:
                raise ProviderAuthorizationError(
                    f"Gemini rejected API key: {e}", provider=self.name, status=e.code
                ) from e
            raise ProviderTransientError(
                f"Gemini API error: {e}", provider=self.name, status=e.code
            ) from e
        except (httpx.HTTPError, asyncio.TimeoutError, OSError) as e:
            raise ProviderTransientError(f"Gemini request failed: {e!r}", provider=self.name) from e

        elapsed_ms = (time.perf_counter() - start) * 1000
        text = response.text if response else None
        if not text or not text.strip():
            raise ProviderTransientError("No valid response from Gemini API", provider=self.name)

        usage = response.usage_metadata
        log_llm_round(
            component=self.name,
            model=self._model,
            tokens_in=usage.prompt_token_count if usage else None,
            tokens_out=usage.candidates_token_count if usage else None,
            elapsed_ms=elapsed_ms,
        )
        log_llm_response(operation="Gemini", response_text=text)
        get_session_stats().increment_api_call(self.name)
        return text


def build_providers(
    config: Config,
    settings: BotSettings,
) -> dict[str, ProviderClient]:
    """Create both provider backends, keyed by the names the settings use."""
    providers_cfg = config.providers
    shapes_key = (
        providers_cfg.shapes_api_key.get_secret_value() if providers_cfg.shapes_api_key else None
    )
    gemini_key = (
        providers_cfg.gemini_api_key.get_secret_value() if providers_cfg.gemini_api_key else None
    )

    if not shapes_key:
        logger.warning("No Shapes API key found; only linked users can use the Shapes backend")
    if not gemini_key:
        logger.warning("No Gemini API key found; the Gemini backend is unavailable")

    shapes = ShapesProvider(
        sdk_client=ShapesSDKClient(
            providers_cfg.shapes_api_url, shapes_key, settings, providers_cfg.timeout_seconds
        ),
        http_client=ShapesHTTPClient(
            providers_cfg.shapes_api_url, shapes_key, settings, providers_cfg.timeout_seconds
        ),
        settings=settings,
        is_logging_enabled=settings.is_logging_enabled,
    )
    gemini = GeminiProvider(
        gemini_key,
        model=providers_cfg.gemini_model,
        persona_name=config.chat.bot_name,
    )
    return {"shapes": shapes, "gemini": gemini}


__all__ = [
    "GeminiProvider",
    "ProviderClient",
    "ProviderError",
    "ProviderRequest",
    "ShapesHTTPClient",
    "ShapesProvider",
    "ShapesSDKClient",
    "UserCredential",
    "build_providers",
]
