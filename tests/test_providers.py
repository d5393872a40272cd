"""Tests for provider clients.

The Shapes clients run against a local aiohttp server that speaks the
chat-completions wire format, so no test touches the network.
"""

from collections.abc import Mapping
from types import SimpleNamespace

import httpx
import pytest
from aiohttp import web
from aiohttp import test_utils
from google.genai import errors as genai_errors

from tenshi_bot.config import BotSettings
from tenshi_bot.core.content import ContentPart
from tenshi_bot.core.context_store import Turn
from tenshi_bot.core.providers import (
    GeminiProvider,
    ProviderRequest,
    ShapesHTTPClient,
    ShapesProvider,
    ShapesSDKClient,
    UserCredential,
    extract_completion_text,
    shapes_headers,
)
from tenshi_bot.errors import ProviderAuthorizationError, ProviderTransientError


def make_request(credential: UserCredential | None = None) -> ProviderRequest:
    content = [ContentPart.text("alice: hi"), ContentPart.image("http://x/cat.png")]
    return ProviderRequest(
        conversation_id="chan-9",
        caller_id="user-3",
        content=content,
        history=[Turn.user(content, "user-3")],
        credential=credential,
    )


def completion(text: str) -> dict:
    return {
        "id": "cmpl-1",
        "object": "chat.completion",
        "created": 0,
        "model": "shapesinc/tenshi",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": text},
                "finish_reason": "stop",
            }
        ],
        "usage": {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5},
    }


class FakeShapesServer:
    """Local stand-in for the Shapes chat-completions endpoint."""

    def __init__(self, status: int = 200, body: dict | str | None = None):
        self.status = status
        self.body = completion("hello from shapes") if body is None else body
        self.requests: list[tuple[Mapping[str, str], dict]] = []

    async def handle(self, request: web.Request) -> web.Response:
        self.requests.append((request.headers.copy(), await request.json()))
        if isinstance(self.body, str):
            return web.Response(status=self.status, text=self.body)
        return web.json_response(self.body, status=self.status)

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/v1/chat/completions", self.handle)
        return app


@pytest.fixture
def settings() -> BotSettings:
    return BotSettings(shape_username="angel")


class TestShapesHeaders:
    """Tests for identity headers."""

    def test_shared_key_headers(self):
        headers = shapes_headers(make_request())
        assert headers == {
            "X-User-Id": "discord-user-user-3",
            "X-Channel-Id": "discord-channel-chan-9",
        }

    def test_user_credential_headers(self):
        headers = shapes_headers(make_request(UserCredential("tok-1", "app-1")))
        assert headers["X-User-Auth"] == "tok-1"
        assert headers["X-App-ID"] == "app-1"


class TestExtractCompletionText:
    """Tests for response shape handling."""

    def test_valid(self):
        assert extract_completion_text(completion("hey")) == "hey"

    @pytest.mark.parametrize(
        "data",
        [{}, {"choices": []}, {"choices": [{"message": {}}]}, completion("   "), "oops"],
    )
    def test_bad_shapes_are_transient(self, data):
        with pytest.raises(ProviderTransientError):
            extract_completion_text(data)


@pytest.mark.parametrize("client_cls", [ShapesHTTPClient, ShapesSDKClient])
class TestShapesClients:
    """Both client implementations behave the same against the same server."""

    @pytest.mark.asyncio
    async def test_success(self, client_cls, settings):
        server = FakeShapesServer()
        async with test_utils.TestServer(server.app()) as ts:
            client = client_cls(str(ts.make_url("/v1")), "shared-key", settings, timeout=5)
            text = await client.generate(make_request())
            await client.close()

        assert text == "hello from shapes"
        headers, body = server.requests[0]
        assert body["model"] == "shapesinc/angel"
        assert body["messages"][0]["role"] == "user"
        assert body["messages"][0]["content"][1] == {
            "type": "image_url",
            "image_url": {"url": "http://x/cat.png"},
        }
        assert headers["X-User-Id"] == "discord-user-user-3"
        assert headers["X-Channel-Id"] == "discord-channel-chan-9"
        assert headers["Authorization"] == "Bearer shared-key"

    @pytest.mark.asyncio
    async def test_user_credential_sent(self, client_cls, settings):
        server = FakeShapesServer()
        async with test_utils.TestServer(server.app()) as ts:
            client = client_cls(str(ts.make_url("/v1")), "shared-key", settings, timeout=5)
            await client.generate(make_request(UserCredential("tok-1", "app-1")))
            await client.close()

        headers, _ = server.requests[0]
        assert headers["X-User-Auth"] == "tok-1"
        assert headers["X-App-ID"] == "app-1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_statuses(self, client_cls, settings, status):
        server = FakeShapesServer(status=status, body={"error": {"message": "invalid_api_key"}})
        async with test_utils.TestServer(server.app()) as ts:
            client = client_cls(str(ts.make_url("/v1")), "bad-key", settings, timeout=5)
            with pytest.raises(ProviderAuthorizationError) as exc_info:
                await client.generate(make_request())
            await client.close()
        assert exc_info.value.status == status
        assert exc_info.value.kind == "authorization"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 429, 500, 503])
    async def test_other_statuses_are_transient(self, client_cls, settings, status):
        server = FakeShapesServer(status=status, body={"error": {"message": "nope"}})
        async with test_utils.TestServer(server.app()) as ts:
            client = client_cls(str(ts.make_url("/v1")), "key", settings, timeout=5)
            with pytest.raises(ProviderTransientError):
                await client.generate(make_request())
            await client.close()

    @pytest.mark.asyncio
    async def test_empty_reply_is_transient(self, client_cls, settings):
        server = FakeShapesServer(body=completion(""))
        async with test_utils.TestServer(server.app()) as ts:
            client = client_cls(str(ts.make_url("/v1")), "key", settings, timeout=5)
            with pytest.raises(ProviderTransientError):
                await client.generate(make_request())
            await client.close()

    @pytest.mark.asyncio
    async def test_unreachable_is_transient(self, client_cls, settings):
        client = client_cls("http://127.0.0.1:1/v1", "key", settings, timeout=2)
        with pytest.raises(ProviderTransientError):
            await client.generate(make_request())
        await client.close()

    @pytest.mark.asyncio
    async def test_missing_key_without_credential(self, client_cls, settings):
        client = client_cls("http://127.0.0.1:1/v1", None, settings)
        with pytest.raises(ProviderTransientError):
            await client.generate(make_request())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("usage", ["n/a", None, 7, {"prompt_tokens": "many"}])
    async def test_odd_usage_field_is_ignored(self, client_cls, settings, usage):
        body = completion("still here")
        body["usage"] = usage
        server = FakeShapesServer(body=body)
        async with test_utils.TestServer(server.app()) as ts:
            client = client_cls(str(ts.make_url("/v1")), "key", settings, timeout=5)
            text = await client.generate(make_request())
            await client.close()

        assert text == "still here"

    @pytest.mark.asyncio
    async def test_no_shared_key_sends_no_authorization(self, client_cls, settings):
        server = FakeShapesServer()
        async with test_utils.TestServer(server.app()) as ts:
            client = client_cls(str(ts.make_url("/v1")), None, settings, timeout=5)
            await client.generate(make_request(UserCredential("tok-1", "app-1")))
            await client.close()

        headers, _ = server.requests[0]
        assert "Authorization" not in headers
        assert headers["X-User-Auth"] == "tok-1"


class TestShapesProvider:
    """Tests for the two-implementation Shapes composition."""

    @pytest.mark.asyncio
    async def test_selected_client_goes_first(self, make_provider):
        sdk = make_provider("shapes/openai", "from sdk")
        http = make_provider("shapes/http", "from http")
        settings = BotSettings(shapes_client="http")

        provider = ShapesProvider(sdk, http, settings)

        assert await provider.generate(make_request()) == "from http"
        assert sdk.calls == 0

    @pytest.mark.asyncio
    async def test_transient_retries_other_client(self, make_provider):
        sdk = make_provider("shapes/openai", ProviderTransientError("boom"))
        http = make_provider("shapes/http", "from http")

        provider = ShapesProvider(sdk, http, BotSettings())

        assert await provider.generate(make_request()) == "from http"
        assert sdk.calls == 1
        assert http.calls == 1

    @pytest.mark.asyncio
    async def test_authorization_is_not_retried(self, make_provider):
        sdk = make_provider("shapes/openai", ProviderAuthorizationError("denied"))
        http = make_provider("shapes/http", "from http")

        provider = ShapesProvider(sdk, http, BotSettings())

        with pytest.raises(ProviderAuthorizationError):
            await provider.generate(make_request())
        assert http.calls == 0

    @pytest.mark.asyncio
    async def test_both_transient(self, make_provider):
        sdk = make_provider("shapes/openai", ProviderTransientError("a"))
        http = make_provider("shapes/http", ProviderTransientError("b"))

        provider = ShapesProvider(sdk, http, BotSettings())

        with pytest.raises(ProviderTransientError):
            await provider.generate(make_request())


class TestGeminiProvider:
    """Tests for the Gemini backend that need no network."""

    @pytest.mark.asyncio
    async def test_missing_key_is_transient(self):
        provider = GeminiProvider(api_key=None)
        with pytest.raises(ProviderTransientError):
            await provider.generate(make_request())

    def test_contents_use_last_five_turns_with_model_role(self):
        provider = GeminiProvider(api_key=None)
        history = []
        for i in range(4):
            history.append(Turn.user([ContentPart.text(f"q{i}")], "u"))
            history.append(Turn.assistant(f"a{i}"))

        contents = provider._build_contents(history)

        assert len(contents) == 5
        assert [c.role for c in contents] == ["model", "user", "model", "user", "model"]
        assert contents[-1].parts[0].text == "a3"

    def test_media_parts_become_text(self):
        provider = GeminiProvider(api_key=None)
        contents = provider._build_contents(make_request().history)
        assert contents[0].parts[0].text == "alice: hi\n[image: http://x/cat.png]"


def gemini_with(outcome) -> tuple[GeminiProvider, list[dict]]:
    """A GeminiProvider whose SDK call returns or raises `outcome`."""
    calls: list[dict] = []

    async def generate_content(**kwargs):
        calls.append(kwargs)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    provider = GeminiProvider(api_key=None, model="gemini-test", persona_name="tenshi")
    provider._client = SimpleNamespace(
        aio=SimpleNamespace(models=SimpleNamespace(generate_content=generate_content))
    )
    return provider, calls


class TestGeminiErrorMapping:
    """How SDK results and failures map onto provider errors."""

    @pytest.mark.asyncio
    async def test_success_passes_persona_and_config(self):
        reply = SimpleNamespace(
            text="hi from gemini",
            usage_metadata=SimpleNamespace(prompt_token_count=4, candidates_token_count=3),
        )
        provider, calls = gemini_with(reply)

        assert await provider.generate(make_request()) == "hi from gemini"

        call = calls[0]
        assert call["model"] == "gemini-test"
        assert call["config"].system_instruction == provider._system_prompt
        assert call["config"].temperature == 0.9
        assert call["config"].max_output_tokens == 200
        assert call["contents"][-1].role == "user"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", [401, 403])
    async def test_auth_codes(self, code):
        error = genai_errors.APIError(code, {"error": {"message": "bad key"}})
        provider, _ = gemini_with(error)

        with pytest.raises(ProviderAuthorizationError) as exc_info:
            await provider.generate(make_request())
        assert exc_info.value.status == code

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", [400, 429, 500, 503])
    async def test_other_codes_are_transient(self, code):
        error = genai_errors.APIError(code, {"error": {"message": "nope"}})
        provider, _ = gemini_with(error)

        with pytest.raises(ProviderTransientError) as exc_info:
            await provider.generate(make_request())
        assert exc_info.value.status == code

    @pytest.mark.asyncio
    async def test_network_error_is_transient(self):
        provider, _ = gemini_with(httpx.ConnectError("connection refused"))
        with pytest.raises(ProviderTransientError):
            await provider.generate(make_request())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", [None, "", "   "])
    async def test_empty_text_is_transient(self, text):
        provider, _ = gemini_with(SimpleNamespace(text=text, usage_metadata=None))
        with pytest.raises(ProviderTransientError):
            await provider.generate(make_request())
