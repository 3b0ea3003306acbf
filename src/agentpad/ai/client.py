"""Async client for OpenAI-compatible chat completion endpoints."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Protocol,
    Sequence,
)

import httpx
from openai import APIConnectionError, APIError, APIStatusError, AsyncOpenAI

from ..chat.message_model import ChatMessage
from ..services.settings import ProviderProfile
from .errors import AIClientError, ApiError, AuthError, RateLimitedError, StreamError
from .streaming import SSEDecoder, StreamAssembler
from .wire import from_wire_completion, to_wire_messages

LOGGER = logging.getLogger(__name__)

StreamCallback = Callable[[str], Awaitable[None] | None]


class CredentialSource(Protocol):
    """Turns a stored (encrypted) API key into the plaintext sent to the provider."""

    def decrypt(self, token: str) -> str:
        ...


@dataclass(slots=True)
class ClientSettings:
    """Transport options shared by every provider connection."""

    request_timeout: float | None = 90.0
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False


@dataclass(slots=True)
class AIStreamEvent:
    """Normalized streaming event.

    ``content.delta`` events carry a text fragment in ``content``; the final
    ``message.done`` event carries the assembled assistant ``message``.
    """

    type: str
    content: str | None = None
    message: ChatMessage | None = None


class AIClient:
    """Chat completion client with typed errors and incremental stream decoding."""

    def __init__(
        self,
        credentials: CredentialSource,
        *,
        settings: ClientSettings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._credentials = credentials
        self._settings = settings or ClientSettings()
        self._http_client = http_client
        self._clients: Dict[tuple[str, str], AsyncOpenAI] = {}
        self._models_cache: Dict[str, List[str]] = {}
        self._models_lock = asyncio.Lock()

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    # ------------------------------------------------------------------
    # Chat completions
    # ------------------------------------------------------------------

    async def complete(
        self,
        provider: ProviderProfile,
        model: str,
        messages: Sequence[ChatMessage],
        *,
        tools: Sequence[Mapping[str, Any]] | None = None,
    ) -> ChatMessage:
        """Send a non-streaming request and map the reply to an assistant message."""

        client = self._client_for(provider)
        payload = self._build_chat_payload(model, messages, tools, stream=False)
        LOGGER.debug("Requesting chat completion via %s with %s message(s)", model, len(payload["messages"]))
        try:
            completion = await client.chat.completions.create(**payload)
        except APIStatusError as exc:
            raise _map_status_error(exc) from exc
        except APIConnectionError as exc:
            raise ApiError(f"Network error contacting provider: {exc}") from exc
        except APIError as exc:
            raise ApiError(f"Provider request failed: {exc}") from exc
        return from_wire_completion(completion.model_dump())

    async def stream_chat(
        self,
        provider: ProviderProfile,
        model: str,
        messages: Sequence[ChatMessage],
        *,
        tools: Sequence[Mapping[str, Any]] | None = None,
    ) -> AsyncIterator[AIStreamEvent]:
        """Stream a chat completion.

        Yields a ``content.delta`` event per text fragment as soon as it is
        decoded, then one ``message.done`` event with the final message.
        """

        client = self._client_for(provider)
        payload = self._build_chat_payload(model, messages, tools, stream=True)
        LOGGER.debug(
            "Starting streamed chat completion via %s with %s message(s)",
            model,
            len(payload["messages"]),
        )

        decoder = SSEDecoder()
        assembler = StreamAssembler()
        received = 0
        try:
            async with client.chat.completions.with_streaming_response.create(**payload) as response:
                async for data in response.iter_bytes():
                    if not data:
                        continue
                    received += len(data)
                    for item in decoder.feed(data):
                        delta = assembler.feed_payload(item)
                        if delta:
                            yield AIStreamEvent(type="content.delta", content=delta)
                for item in decoder.flush():
                    delta = assembler.feed_payload(item)
                    if delta:
                        yield AIStreamEvent(type="content.delta", content=delta)
        except APIStatusError as exc:
            raise _map_status_error(exc) from exc
        except APIConnectionError as exc:
            raise ApiError(f"Network error contacting provider: {exc}") from exc
        except (httpx.HTTPError, APIError) as exc:
            raise StreamError(f"Stream processing failed: {exc}") from exc

        if received == 0:
            raise StreamError("Streaming not supported by provider")
        if assembler.skipped_chunks:
            LOGGER.warning("Skipped %s malformed chunk(s) while streaming", assembler.skipped_chunks)
        yield AIStreamEvent(type="message.done", message=assembler.finish())

    async def send_message(
        self,
        provider: ProviderProfile,
        model: str,
        messages: Sequence[ChatMessage],
        *,
        tools: Sequence[Mapping[str, Any]] | None = None,
        on_stream: StreamCallback | None = None,
    ) -> ChatMessage:
        """Return the assistant reply, streaming deltas to ``on_stream`` when provided."""

        if on_stream is None:
            return await self.complete(provider, model, messages, tools=tools)

        final: ChatMessage | None = None
        async for event in self.stream_chat(provider, model, messages, tools=tools):
            if event.type == "content.delta" and event.content:
                result = on_stream(event.content)
                if inspect.isawaitable(result):
                    await result
            elif event.type == "message.done":
                final = event.message
        if final is None:  # pragma: no cover - stream_chat always ends with message.done
            raise StreamError("Stream ended without a final message")
        return final

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    async def list_models(self, provider: ProviderProfile, *, force_refresh: bool = False) -> List[str]:
        """Return the model identifiers advertised by ``provider``."""

        cached = self._models_cache.get(provider.id)
        if cached is not None and not force_refresh:
            return list(cached)

        async with self._models_lock:
            cached = self._models_cache.get(provider.id)
            if cached is not None and not force_refresh:
                return list(cached)

            client = self._client_for(provider)
            try:
                response = await client.models.list()
            except APIStatusError as exc:
                raise _map_status_error(exc) from exc
            except APIConnectionError as exc:
                raise ApiError(f"Network error contacting provider: {exc}") from exc
            except APIError as exc:
                raise ApiError(f"Provider request failed: {exc}") from exc
            models = [item.id for item in response.data if getattr(item, "id", None)]
            self._models_cache[provider.id] = models
            return list(models)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _client_for(self, provider: ProviderProfile) -> AsyncOpenAI:
        key = (provider.base_url, provider.api_key)
        client = self._clients.get(key)
        if client is not None:
            return client

        try:
            api_key = self._credentials.decrypt(provider.api_key)
        except ValueError as exc:
            raise AuthError(f"Unable to decrypt API key for provider {provider.name}") from exc
        if not api_key:
            raise AuthError(f"No API key configured for provider {provider.name}")

        headers = dict(self._settings.default_headers) if self._settings.default_headers else None
        client = AsyncOpenAI(
            api_key=api_key,
            base_url=provider.base_url,
            timeout=self._settings.request_timeout,
            default_headers=headers,
            max_retries=0,
            http_client=self._http_client,
        )
        self._clients[key] = client
        return client

    def _build_chat_payload(
        self,
        model: str,
        messages: Sequence[ChatMessage],
        tools: Sequence[Mapping[str, Any]] | None,
        *,
        stream: bool,
    ) -> Dict[str, Any]:
        wire_messages = to_wire_messages(messages)
        if not wire_messages:
            raise ValueError("At least one message is required to start a chat")
        payload: Dict[str, Any] = {"model": model, "messages": wire_messages}
        if tools:
            payload["tools"] = [dict(tool) for tool in tools]
        if stream:
            payload["stream"] = True
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)
        return payload

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("AI prompt payload (unserializable): %s", payload)
        else:
            LOGGER.debug("AI prompt payload:\n%s", serialized)

    async def aclose(self) -> None:
        """Close the underlying OpenAI clients to release network resources."""

        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            await client.close()


def _map_status_error(exc: APIStatusError) -> AIClientError:
    status = exc.status_code
    provider_message = _provider_message(exc)
    suffix = f": {provider_message}" if provider_message else ""
    if status in (401, 403):
        return AuthError(f"Authentication failed ({status}){suffix}", status_code=status, provider_message=provider_message)
    if status == 429:
        return RateLimitedError(f"Rate limited by provider{suffix}", status_code=status, provider_message=provider_message)
    if status >= 500:
        return ApiError(f"Provider error ({status}){suffix}", status_code=status, provider_message=provider_message)
    return ApiError(f"Request failed ({status}){suffix}", status_code=status, provider_message=provider_message)


def _provider_message(exc: APIStatusError) -> str | None:
    body = exc.body
    if isinstance(body, Mapping):
        for key in ("message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, Mapping) and isinstance(value.get("message"), str):
                return value["message"]
    if isinstance(body, str) and body.strip():
        return body.strip()
    return None


__all__ = ["AIClient", "AIStreamEvent", "ClientSettings", "CredentialSource"]
