# Test suite for the provider chat clients, against a fake HTTP session

import asyncio
import json

import aiohttp
import pytest

from accesslint_core.agent.base_chat_client import estimate_output_tokens
from accesslint_core.agent.providers import (
    AnthropicChatClient,
    AzureOpenAIChatClient,
    GeminiChatClient,
    create_chat_client,
    create_tracker,
)
from accesslint_core.agent.providers.anthropic_chat_client import (
    apply_cache_control,
    determine_cache_breakpoints,
)
from accesslint_core.agent.usage import (
    JsonFileUsageStore,
    MemoryUsageStore,
    RateLimiter,
    TokenTracker,
)
from accesslint_core.config import Settings
from accesslint_core.exceptions import (
    EmptyResponseError,
    ModelRateLimitError,
    ModelTimeoutError,
    ProviderAuthenticationError,
    ProviderConfigurationError,
    ProviderRequestError,
    ProviderResponseError,
    ProviderServiceError,
    RateLimitExceededError,
    RetryCancelledError,
    ToolCallParseError,
)
from accesslint_core.utils.retry import RetryConfig, RetryExecutor

SONNET = "claude-sonnet-4-20250514"
AZURE_ENDPOINT = (
    "https://example.openai.azure.com/openai/deployments/gpt-4o/chat/completions"
    "?api-version=2024-02-01"
)

READ_FILE_TOOL = {
    "name": "read_file",
    "description": "Read a file from the workspace",
    "input_schema": {
        "required": ["file_path"],
        "properties": {"file_path": {"type": "string"}},
    },
}

WRITE_FILE_TOOL = {
    "name": "write_file",
    "description": "Write a file in the workspace",
    "input_schema": {
        "required": ["file_path", "content"],
        "properties": {"file_path": {"type": "string"}, "content": {"type": "string"}},
    },
}


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeSleep:
    def __init__(self, clock=None):
        self.delays = []
        self.clock = clock

    async def __call__(self, seconds):
        self.delays.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


class FakeResponse:
    def __init__(self, status=200, body=None, text="", headers=None):
        self.status = status
        self.body = body
        self._text = text
        self.headers = headers or {}

    async def text(self):
        return self._text

    async def json(self):
        return self.body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Replays queued responses (or raises queued exceptions) in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []
        self.closed = False

    def post(self, url, json=None, headers=None, params=None):
        self.requests.append({"url": url, "json": json, "headers": headers, "params": params})
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self):
        self.closed = True


def anthropic_reply(text, input_tokens=12, output_tokens=3):
    return FakeResponse(
        body={
            "content": [{"type": "text", "text": text}],
            "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
        }
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def retry_sleep():
    return FakeSleep()


@pytest.fixture
def tracker(clock):
    return TokenTracker(MemoryUsageStore(), clock=clock)


@pytest.fixture
def make_anthropic(tracker, retry_sleep):
    def factory(*responses, **kwargs):
        session = FakeSession(*responses)
        kwargs.setdefault("tracker", tracker)
        kwargs.setdefault("retry_executor", RetryExecutor(sleep=retry_sleep))
        kwargs.setdefault("retry_config", RetryConfig(max_retries=2, jitter_enabled=False))
        client = AnthropicChatClient(SONNET, "test-key", session=session, **kwargs)
        return client, session

    return factory


class TestAnthropicChatClient:
    """Request shape, usage accounting and history"""

    @pytest.mark.asyncio
    async def test_send_message(self, make_anthropic, tracker):
        client, session = make_anthropic(anthropic_reply("Hi there"))

        response = await client.send_message("Hello")

        assert response.text == "Hi there"
        assert (response.input_tokens, response.output_tokens) == (12, 3)
        assert not response.has_tool_calls

        request = session.requests[0]
        assert request["url"] == "https://api.anthropic.com/v1/messages"
        assert request["headers"]["x-api-key"] == "test-key"
        assert request["headers"]["anthropic-version"] == "2023-06-01"
        assert request["params"] is None
        assert request["json"]["model"] == SONNET
        assert request["json"]["max_tokens"] == 4096
        assert request["json"]["messages"] == [{"role": "user", "content": "Hello"}]
        assert "system" not in request["json"]

        assert [(m.role, m.text) for m in client.get_history()] == [
            ("user", "Hello"),
            ("assistant", "Hi there"),
        ]
        assert tracker.usage_history[0].total_tokens == 15
        assert tracker.get_rate_limit_info("anthropic").current_minute_tokens == 15
        assert tracker.get_stream_info() is None

    @pytest.mark.asyncio
    async def test_system_prompt_is_cached_block(self, make_anthropic):
        client, session = make_anthropic(anthropic_reply("ok"), system_prompt="Be brief.")

        await client.send_message("Hello")

        assert session.requests[0]["json"]["system"] == [
            {"type": "text", "text": "Be brief.", "cache_control": {"type": "ephemeral"}}
        ]

    @pytest.mark.asyncio
    async def test_history_sent_on_next_turn(self, make_anthropic):
        client, session = make_anthropic(anthropic_reply("first"), anthropic_reply("second"))

        await client.send_message("one")
        await client.send_message("two")

        assert session.requests[1]["json"]["messages"] == [
            {"role": "user", "content": "one"},
            {"role": "assistant", "content": "first"},
            {"role": "user", "content": "two"},
        ]
        assert client.get_model_info()["history_length"] == 4

    @pytest.mark.asyncio
    async def test_without_history(self, make_anthropic):
        client, session = make_anthropic(anthropic_reply("first"))
        await client.send_message("one", use_history=False)
        assert client.get_history() == []

    @pytest.mark.asyncio
    async def test_clear_history(self, make_anthropic):
        client, _ = make_anthropic(anthropic_reply("first"))
        await client.send_message("one")
        client.clear_history()
        assert client.get_history() == []

    @pytest.mark.asyncio
    async def test_missing_usage_is_estimated(self, make_anthropic):
        client, _ = make_anthropic(
            FakeResponse(body={"content": [{"type": "text", "text": "hello world"}]})
        )
        response = await client.send_message("Hello")
        assert response.output_tokens == 3
        assert response.input_tokens > 0

    @pytest.mark.asyncio
    async def test_tool_call_parsed_and_recorded(self, make_anthropic):
        reply = 'Let me look.\n<read_file>{"file_path": "src/app.py"}</read_file>'
        client, session = make_anthropic(anthropic_reply(reply))

        response = await client.send_message_with_tools("Open the app", [READ_FILE_TOOL])

        assert response.text == "Let me look."
        assert response.tool_calls[0].name == "read_file"
        assert response.tool_calls[0].input == {"file_path": "src/app.py"}
        assert response.stream_info.estimated_tokens > 0
        assert client.get_history()[-1].text == "[Tool: read_file]"

        system = session.requests[0]["json"]["system"][0]["text"]
        assert "You can use the following tools:" in system
        assert "## read_file" in system

    @pytest.mark.asyncio
    async def test_every_tool_call_returned_in_order(self, make_anthropic):
        reply = (
            '<read_file>{"file_path": "a.html"}</read_file>\n'
            '<read_file>{"file_path": "b.html"}</read_file>'
        )
        client, _ = make_anthropic(anthropic_reply(reply))

        response = await client.send_message_with_tools("Compare", [READ_FILE_TOOL])

        assert [call.input["file_path"] for call in response.tool_calls] == ["a.html", "b.html"]
        assert client.get_history()[-1].text == "[Tool: read_file, read_file]"

    @pytest.mark.asyncio
    async def test_large_write_file_reply(self, make_anthropic):
        page = "<!DOCTYPE html>\n<html><body>\n" + "".join(
            f"<p>Paragraph {i} needs an accessible name and enough contrast.</p>\n"
            for i in range(200)
        ) + "</body></html>"
        arguments = json.dumps({"file_path": "index.html", "content": page})
        reply = f"Writing the fixed page.\n<write_file>{arguments}</write_file>"
        assert len(reply) > 8192
        client, _ = make_anthropic(anthropic_reply(reply))

        response = await client.send_message_with_tools("Fix it", [WRITE_FILE_TOOL])

        assert len(response.tool_calls) == 1
        assert response.tool_calls[0].name == "write_file"
        assert response.tool_calls[0].input["content"] == page
        assert response.text == "Writing the fixed page."
        assert client.parser.get_mistake_count() == 0


class TestAnthropicErrors:
    """HTTP failures, retries and client-side limits"""

    @pytest.mark.asyncio
    async def test_authentication_failure_not_retried(self, make_anthropic, retry_sleep, tracker):
        client, session = make_anthropic(FakeResponse(401, text="invalid x-api-key"))

        with pytest.raises(ProviderAuthenticationError) as exc_info:
            await client.send_message("Hello")

        assert "Anthropic authentication failed (401)" in exc_info.value.message
        assert len(session.requests) == 1
        assert retry_sleep.delays == []
        assert tracker.get_stream_info() is None
        assert tracker.usage_history == []

    @pytest.mark.asyncio
    async def test_rate_limited_then_success(self, make_anthropic, retry_sleep):
        client, session = make_anthropic(
            FakeResponse(429, text="slow down", headers={"retry-after": "3"}),
            anthropic_reply("finally"),
        )

        response = await client.send_message("Hello")

        assert response.text == "finally"
        assert len(session.requests) == 2
        assert retry_sleep.delays == [3.0]

    @pytest.mark.asyncio
    async def test_rate_limit_raises_model_rate_limit_error(self, make_anthropic):
        client, _ = make_anthropic(
            FakeResponse(429, text="slow down", headers={"retry-after": "3"}),
            retry_config=RetryConfig(max_retries=0),
        )

        with pytest.raises(ModelRateLimitError) as exc_info:
            await client.send_message("Hello")

        assert exc_info.value.status == 429
        assert exc_info.value.retry_after == 3.0
        assert "Anthropic rate limit exceeded (429)" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_server_error_retried(self, make_anthropic, retry_sleep):
        client, session = make_anthropic(FakeResponse(503, text="busy"), anthropic_reply("ok"))
        assert (await client.send_message("Hello")).text == "ok"
        assert retry_sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_bad_request_not_retried(self, make_anthropic):
        client, session = make_anthropic(FakeResponse(400, text="messages: field required"))
        with pytest.raises(ProviderRequestError) as exc_info:
            await client.send_message("Hello")
        assert exc_info.value.status == 400
        assert len(session.requests) == 1

    @pytest.mark.asyncio
    async def test_connection_error_wrapped_and_retried(self, make_anthropic):
        client, session = make_anthropic(
            aiohttp.ClientConnectionError("refused"), anthropic_reply("ok")
        )
        assert (await client.send_message("Hello")).text == "ok"
        assert len(session.requests) == 2

    @pytest.mark.asyncio
    async def test_timeout(self, make_anthropic):
        client, _ = make_anthropic(
            asyncio.TimeoutError(), retry_config=RetryConfig(max_retries=0)
        )
        with pytest.raises(ModelTimeoutError) as exc_info:
            await client.send_message("Hello")
        assert exc_info.value.timeout_seconds == 120.0

    @pytest.mark.asyncio
    async def test_non_object_body(self, make_anthropic):
        client, _ = make_anthropic(
            FakeResponse(body=["not", "an", "object"]), retry_config=RetryConfig(max_retries=0)
        )
        with pytest.raises(ProviderResponseError):
            await client.send_message("Hello")

    @pytest.mark.asyncio
    async def test_empty_reply(self, make_anthropic, tracker):
        client, _ = make_anthropic(FakeResponse(body={"content": []}))
        with pytest.raises(EmptyResponseError):
            await client.send_message("Hello")
        assert tracker.get_stream_info() is None

    @pytest.mark.asyncio
    async def test_cancelled_before_sending(self, make_anthropic):
        client, session = make_anthropic(anthropic_reply("never"))
        cancel = asyncio.Event()
        cancel.set()

        with pytest.raises(RetryCancelledError):
            await client.send_message("Hello", cancel_event=cancel)
        assert session.requests == []

    @pytest.mark.asyncio
    async def test_rate_limit_exhausted(self, make_anthropic, clock):
        limiter = RateLimiter(1000, clock=clock)
        limiter.record_usage(900)
        tracker = TokenTracker(MemoryUsageStore(), rate_limits={"anthropic": limiter}, clock=clock)
        client, session = make_anthropic(anthropic_reply("never"), tracker=tracker, sleep=FakeSleep())

        with pytest.raises(RateLimitExceededError) as exc_info:
            await client.send_message("Hello")

        assert exc_info.value.wait_time == 60
        assert session.requests == []

    @pytest.mark.asyncio
    async def test_waits_for_rate_limit_window(self, make_anthropic, clock):
        limiter = RateLimiter(1000, clock=clock)
        limiter.record_usage(900)
        tracker = TokenTracker(MemoryUsageStore(), rate_limits={"anthropic": limiter}, clock=clock)
        wait = FakeSleep(clock)
        client, _ = make_anthropic(anthropic_reply("ok"), tracker=tracker, sleep=wait)

        assert (await client.send_message("Hello")).text == "ok"
        assert wait.delays == [60]

    @pytest.mark.asyncio
    async def test_request_larger_than_quota(self, make_anthropic, clock):
        tracker = TokenTracker(
            MemoryUsageStore(), rate_limits={"anthropic": RateLimiter(100, clock=clock)}, clock=clock
        )
        client, session = make_anthropic(anthropic_reply("never"), tracker=tracker)
        with pytest.raises(RateLimitExceededError):
            await client.send_message("Hello")
        assert session.requests == []


class TestHistoryOnFailure:
    """A failed turn leaves the conversation exactly as it was"""

    @pytest.mark.asyncio
    async def test_authentication_failure(self, make_anthropic):
        client, _ = make_anthropic(FakeResponse(401, text="invalid x-api-key"))
        with pytest.raises(ProviderAuthenticationError):
            await client.send_message("hello")
        assert client.get_history() == []

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, make_anthropic):
        client, session = make_anthropic(
            FakeResponse(503, text="busy"), FakeResponse(503, text="busy"),
            FakeResponse(503, text="busy"),
        )
        with pytest.raises(ProviderServiceError):
            await client.send_message("hello")
        assert len(session.requests) == 3
        assert client.get_history() == []

    @pytest.mark.asyncio
    async def test_empty_reply(self, make_anthropic):
        client, _ = make_anthropic(FakeResponse(body={"content": []}))
        with pytest.raises(EmptyResponseError):
            await client.send_message("hello")
        assert client.get_history() == []

    @pytest.mark.asyncio
    async def test_rejected_tool_call(self, make_anthropic, tracker):
        reply = '<delete_everything>{"path": "/"}</delete_everything>'
        client, _ = make_anthropic(anthropic_reply(reply))

        with pytest.raises(ToolCallParseError):
            await client.send_message_with_tools("Clean up", [READ_FILE_TOOL])

        assert client.get_history() == []
        assert tracker.get_stream_info() is None

    @pytest.mark.asyncio
    async def test_cancelled_while_waiting_to_retry(self, make_anthropic):
        cancel = asyncio.Event()

        async def cancelling_sleep(seconds):
            cancel.set()

        client, session = make_anthropic(
            FakeResponse(503, text="busy"), anthropic_reply("never"),
            retry_executor=RetryExecutor(sleep=cancelling_sleep),
        )

        with pytest.raises(RetryCancelledError):
            await client.send_message("hello", cancel_event=cancel)

        assert len(session.requests) == 1
        assert client.get_history() == []

    @pytest.mark.asyncio
    async def test_next_turn_sends_only_new_message(self, make_anthropic):
        client, session = make_anthropic(
            FakeResponse(401, text="invalid x-api-key"), anthropic_reply("ok")
        )

        with pytest.raises(ProviderAuthenticationError):
            await client.send_message("first")
        await client.send_message("second")

        assert session.requests[1]["json"]["messages"] == [{"role": "user", "content": "second"}]
        assert [(m.role, m.text) for m in client.get_history()] == [
            ("user", "second"),
            ("assistant", "ok"),
        ]


class TestCacheBreakpoints:
    """Prompt-caching breakpoint placement"""

    @staticmethod
    def turns(count, system=False):
        messages = [{"role": "user" if i % 2 == 0 else "assistant", "content": str(i)} for i in range(count)]
        if system:
            messages[0] = {"role": "system", "content": "rules"}
        return messages

    def test_short_conversations_not_cached(self):
        assert determine_cache_breakpoints(self.turns(2)) == []

    def test_leading_system_message(self):
        assert determine_cache_breakpoints(self.turns(3, system=True)) == [0]

    def test_spread_over_older_messages(self):
        assert determine_cache_breakpoints(self.turns(10)) == [1, 2, 3, 4]
        assert determine_cache_breakpoints(self.turns(20)) == [3, 6, 9, 12]

    def test_system_plus_spread(self):
        assert determine_cache_breakpoints(self.turns(10, system=True)) == [0, 2, 4, 6]

    def test_reserved_blocks(self):
        assert determine_cache_breakpoints(self.turns(10), reserved=1) == [2, 4, 6]

    def test_never_more_than_four_and_never_the_tail(self):
        for count in range(3, 40):
            points = determine_cache_breakpoints(self.turns(count, system=True))
            assert len(points) <= 4
            assert all(p < max(count - 2, 1) for p in points)

    def test_apply_cache_control(self):
        messages = self.turns(10)
        messages[1] = {"role": "assistant", "content": [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]}

        cached = apply_cache_control(messages)

        assert cached[1]["content"][-1]["cache_control"] == {"type": "ephemeral"}
        assert "cache_control" not in cached[1]["content"][0]
        assert cached[2]["content"] == [
            {"type": "text", "text": "2", "cache_control": {"type": "ephemeral"}}
        ]
        assert cached[9] == {"role": "assistant", "content": "9"}
        # Input untouched
        assert "cache_control" not in messages[1]["content"][-1]


class TestGeminiChatClient:
    """generateContent payloads and replies"""

    @pytest.mark.asyncio
    async def test_request_and_reply(self, tracker):
        session = FakeSession(
            FakeResponse(
                body={
                    "candidates": [{"content": {"parts": [{"text": "Hel"}, {"text": "lo"}]}}],
                    "usageMetadata": {"promptTokenCount": 7, "candidatesTokenCount": 2},
                }
            )
        )
        client = GeminiChatClient(
            "gemini-1.5-pro", "g-key", tracker, session=session, system_prompt="Be kind."
        )

        response = await client.send_message("Hi")

        assert response.text == "Hello"
        assert (response.input_tokens, response.output_tokens) == (7, 2)
        request = session.requests[0]
        assert request["url"] == (
            "https://generativelanguage.googleapis.com/v1beta/models/gemini-1.5-pro:generateContent"
        )
        assert request["params"] == {"key": "g-key"}
        assert "g-key" not in request["url"]
        assert request["json"]["contents"] == [{"role": "user", "parts": [{"text": "Hi"}]}]
        assert request["json"]["systemInstruction"] == {"parts": [{"text": "Be kind."}]}
        assert tracker.usage_history[0].provider == "gemini"

    @pytest.mark.asyncio
    async def test_assistant_role_is_model(self, tracker):
        reply = FakeResponse(body={"candidates": [{"content": {"parts": [{"text": "ok"}]}}]})
        session = FakeSession(reply, reply)
        client = GeminiChatClient("gemini-pro", "g-key", tracker, session=session)

        await client.send_message("one")
        await client.send_message("two")

        roles = [c["role"] for c in session.requests[1]["json"]["contents"]]
        assert roles == ["user", "model", "user"]


class TestAzureOpenAIChatClient:
    """Chat-completions deployment endpoint"""

    @pytest.mark.asyncio
    async def test_request_and_reply(self, tracker):
        session = FakeSession(
            FakeResponse(
                body={
                    "choices": [{"message": {"content": "Sure"}}],
                    "usage": {"prompt_tokens": 9, "completion_tokens": 1},
                }
            )
        )
        client = AzureOpenAIChatClient(
            "gpt-4o", "a-key", tracker, endpoint=AZURE_ENDPOINT, session=session,
            system_prompt="Be terse.",
        )

        response = await client.send_message("Help")

        assert response.text == "Sure"
        assert (response.input_tokens, response.output_tokens) == (9, 1)
        request = session.requests[0]
        assert request["url"] == AZURE_ENDPOINT
        assert request["headers"]["api-key"] == "a-key"
        assert request["json"]["messages"] == [
            {"role": "system", "content": "Be terse."},
            {"role": "user", "content": "Help"},
        ]

    def test_endpoint_required(self, tracker):
        with pytest.raises(ProviderConfigurationError):
            AzureOpenAIChatClient("gpt-4o", "a-key", tracker)


class TestSessionOwnership:
    """HTTP session lifecycle"""

    @pytest.mark.asyncio
    async def test_injected_session_left_open(self, make_anthropic):
        client, session = make_anthropic()
        await client.close()
        assert not session.closed

    @pytest.mark.asyncio
    async def test_owned_session_closed(self, tracker):
        client = AnthropicChatClient(SONNET, "test-key", tracker)
        session = await client._get_session()
        assert isinstance(session, aiohttp.ClientSession)
        await client.close()
        assert session.closed


class TestFactory:
    """Client construction from settings"""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for name in ("ANTHROPIC_API_KEY", "GEMINI_API_KEY", "AZURE_OPENAI_API_KEY",
                     "AZURE_OPENAI_ENDPOINT", "USAGE_STORE_PATH", "DEFAULT_PROVIDER",
                     "DEFAULT_MODEL", "RETRY_MAX_RETRIES", "RETRY_BASE_DELAY"):
            monkeypatch.delenv(name, raising=False)

    def test_unknown_provider(self):
        with pytest.raises(ProviderConfigurationError):
            create_chat_client("openai", Settings(_env_file=None))

    def test_missing_api_key(self):
        with pytest.raises(ProviderConfigurationError) as exc_info:
            create_chat_client("anthropic", Settings(_env_file=None))
        assert "ANTHROPIC_API_KEY" in exc_info.value.message

    def test_azure_needs_endpoint(self):
        settings = Settings(_env_file=None, azure_openai_api_key="a-key")
        with pytest.raises(ProviderConfigurationError):
            create_chat_client("azure_openai", settings)

    def test_gemini_client_from_settings(self):
        settings = Settings(
            _env_file=None, gemini_api_key="g-key", retry_max_retries=1,
            rate_limit_tokens_per_minute=5000,
        )

        client = create_chat_client("gemini", settings, model_name="gemini-pro", session=FakeSession())

        assert isinstance(client, GeminiChatClient)
        assert client.model_name == "gemini-pro"
        assert client.retry_config.max_retries == 1
        assert client.tracker.limiter_for("gemini").tokens_per_minute == 5000

    def test_default_provider(self):
        settings = Settings(_env_file=None, anthropic_api_key="k")
        assert isinstance(create_chat_client(settings=settings), AnthropicChatClient)

    def test_api_call_retry_preset_kept_when_unset(self):
        settings = Settings(_env_file=None, anthropic_api_key="k")
        client = create_chat_client("anthropic", settings, session=FakeSession())
        assert client.retry_config == RetryConfig(5, 2.0, 60.0, 2.5, True)

    def test_only_explicit_retry_fields_override(self):
        settings = Settings(_env_file=None, anthropic_api_key="k", retry_base_delay=0.5)
        client = create_chat_client("anthropic", settings, session=FakeSession())
        assert client.retry_config == RetryConfig(5, 0.5, 60.0, 2.5, True)

    def test_azure_keeps_its_own_preset(self):
        settings = Settings(
            _env_file=None, azure_openai_api_key="a-key", azure_openai_endpoint=AZURE_ENDPOINT
        )
        client = create_chat_client("azure_openai", settings, session=FakeSession())
        assert client.retry_config == RetryConfig(3, 1.0, 30.0, 2.0, True)
        assert client.model_name == "gpt-4o"

    def test_gemini_gets_gemini_model_by_default(self):
        settings = Settings(_env_file=None, gemini_api_key="g-key")
        client = create_chat_client("gemini", settings, session=FakeSession())
        assert client.model_name == "gemini-pro"
        assert client.context_manager.model_id == "gemini-pro"

    def test_configured_model_used_for_default_provider(self):
        settings = Settings(
            _env_file=None, anthropic_api_key="k", default_model="claude-3-5-haiku-20241022"
        )
        client = create_chat_client(settings=settings, session=FakeSession())
        assert client.model_name == "claude-3-5-haiku-20241022"

    def test_tracker_uses_file_store(self, tmp_path):
        settings = Settings(_env_file=None, usage_store_path=tmp_path / "usage.json")
        tracker = create_tracker(settings, "anthropic")
        assert isinstance(tracker.store, JsonFileUsageStore)
        assert (tmp_path / "usage.json").exists()


def test_output_estimate_bounds():
    assert estimate_output_tokens(10) == 500
    assert estimate_output_tokens(2000) == 1000
    assert estimate_output_tokens(100_000) == 4096
