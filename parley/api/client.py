"""Messages API client -- direct httpx calls, blocking and streamed.

Owns one httpx.AsyncClient configured from Settings (base URL, auth and
version headers, timeouts, pool limits). Non-streaming calls get one
retry on 429/500/529 and on timeout; streams are never retried.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator, Sequence
from contextlib import aclosing
from typing import Any

import httpx

from parley.api.streaming import (
    ContentBlockDelta,
    ErrorEvent,
    MessageDelta,
    MessageStart,
    MessageStop,
    StreamAssembler,
    StreamEvent,
    aiter_events,
)
from parley.api.usage import UsageTracker
from parley.config import Settings
from parley.errors import (
    APIError,
    AuthenticationError,
    MalformedResponseError,
    ParleyError,
    StreamError,
    TransportError,
)
from parley.models.content import Message
from parley.models.request import Metadata, MessagesRequest, Tool
from parley.models.response import MessagesResponse, Usage

logger = logging.getLogger(__name__)

MESSAGES_PATH = "/v1/messages"

_RETRYABLE_STATUS = frozenset({429, 500, 529})
_MAX_RETRY_AFTER = 30.0  # seconds
_TIMEOUT_RETRY_DELAY = 1.0  # seconds


def _error_from_response(response: httpx.Response) -> ParleyError:
    """Map a non-200 response (body already read) to an exception."""
    error_type: str | None = None
    try:
        body = response.json()
        error = body.get("error", {}) if isinstance(body, dict) else {}
        error_type = error.get("type")
        message = error.get("message") or f"HTTP {response.status_code}"
    except ValueError:
        message = f"HTTP {response.status_code}: {response.text[:500]}"

    if response.status_code in (401, 403):
        return AuthenticationError(message, status_code=response.status_code)
    return APIError(response.status_code, message, error_type=error_type)


def _retry_after(response: httpx.Response) -> float:
    try:
        retry_after = float(response.headers.get("retry-after", "1"))
    except ValueError:
        retry_after = 1.0
    return max(0.0, min(retry_after, _MAX_RETRY_AFTER))


def _stream_error(event: ErrorEvent) -> StreamError:
    return StreamError(event.message, error_type=event.error_type)


class MessagesClient:
    """Async client for POST /v1/messages.

    Use as an async context manager, or call start()/close() explicitly.
    A custom httpx transport may be injected (tests, proxies).
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        usage_tracker: UsageTracker | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._transport = transport
        self._http: httpx.AsyncClient | None = None
        self.usage = usage_tracker

    @property
    def settings(self) -> Settings:
        return self._settings

    async def start(self) -> None:
        """Initialize the httpx client with auth and timeout settings."""
        if self._http is not None:
            return
        settings = self._settings

        headers: dict[str, str] = {
            "anthropic-version": settings.api_version,
            "content-type": "application/json",
        }
        if settings.anthropic_api_key:
            headers["x-api-key"] = settings.anthropic_api_key
        else:
            logger.warning("ANTHROPIC_API_KEY is not set -- API calls will fail")

        timeout = httpx.Timeout(
            connect=settings.api_timeout_connect,
            read=settings.api_timeout_read,
            write=10.0,
            pool=10.0,
        )
        limits = httpx.Limits(
            max_connections=10,
            max_keepalive_connections=5,
        )

        self._http = httpx.AsyncClient(
            base_url=settings.api_base_url,
            headers=headers,
            timeout=timeout,
            limits=limits,
            transport=self._transport,
        )
        logger.info("httpx client initialized (base_url: %s)", settings.api_base_url)

    async def close(self) -> None:
        """Clean up httpx client."""
        if self._http:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> MessagesClient:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _require_http(self) -> httpx.AsyncClient:
        if not self._http:
            raise RuntimeError("httpx client not initialized -- call start() first")
        return self._http

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def build_request(
        self,
        messages: Sequence[Message],
        *,
        system: str | None = None,
        tools: Sequence[Tool] | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        top_p: float | None = None,
        top_k: int | None = None,
        stop_sequences: list[str] | None = None,
        metadata: Metadata | None = None,
    ) -> MessagesRequest:
        """Build a request, filling model and max_tokens from settings."""
        return MessagesRequest(
            model=model or self._settings.model,
            messages=tuple(messages),
            max_tokens=max_tokens or self._settings.max_tokens,
            system=system,
            tools=tuple(tools) if tools else None,
            temperature=temperature,
            top_p=top_p,
            top_k=top_k,
            stop_sequences=stop_sequences,
            metadata=metadata,
        )

    # ------------------------------------------------------------------
    # Non-streaming
    # ------------------------------------------------------------------

    async def send(self, request: MessagesRequest) -> MessagesResponse:
        """POST the request and decode the full response.

        Raises AuthenticationError, APIError, TransportError or
        MalformedResponseError.
        """
        http = self._require_http()
        payload = request.to_payload()
        self._record_started(request.model)
        logger.debug(
            "Sending request: model=%s messages=%d tools=%d max_tokens=%d",
            request.model,
            len(request.messages),
            len(request.tools or ()),
            request.max_tokens,
        )

        try:
            result = await self._post_with_retry(http, payload)
        except ParleyError as e:
            self._record_failed(request.model, e)
            logger.error("Request failed: %s", e)
            raise

        self._record_completed(request.model, result.usage)
        logger.debug(
            "Received response %s: stop_reason=%s input_tokens=%d output_tokens=%d",
            result.id,
            result.stop_reason,
            result.usage.input_tokens,
            result.usage.output_tokens,
        )
        return result

    async def _post_with_retry(
        self, http: httpx.AsyncClient, payload: dict[str, Any]
    ) -> MessagesResponse:
        # Simple retry: 1x for 429/500/529 and timeouts
        last_error: ParleyError | None = None
        for attempt in range(2):  # max 2 attempts (initial + 1 retry)
            try:
                response = await http.post(MESSAGES_PATH, json=payload)
            except httpx.TimeoutException as e:
                last_error = TransportError(f"API request timed out: {e}")
                if attempt == 0:
                    logger.warning("API timeout, retrying: %s", e)
                    await asyncio.sleep(_TIMEOUT_RETRY_DELAY)
                    continue
                break
            except httpx.HTTPError as e:
                last_error = TransportError(f"HTTP error: {e}")
                break  # Don't retry connection errors

            if response.status_code == 200:
                try:
                    return MessagesResponse.from_wire(response.json())
                except ValueError as e:
                    raise MalformedResponseError(f"Response body is not JSON: {e}") from e

            last_error = _error_from_response(response)
            if response.status_code in _RETRYABLE_STATUS and attempt == 0:
                retry_after = _retry_after(response)
                logger.warning(
                    "API error %d, retrying in %.1fs: %s",
                    response.status_code,
                    retry_after,
                    last_error,
                )
                await asyncio.sleep(retry_after)
                continue
            break

        raise last_error or TransportError("API call failed with unknown error")

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def stream(self, request: MessagesRequest) -> AsyncGenerator[StreamEvent, None]:
        """Stream decoded events for the request.

        Undecodable lines are yielded as ErrorEvents without error_type and
        the stream continues. A service-sent error event is yielded and
        ends the stream. Closing the generator closes the HTTP response.
        Raises StreamInterruptedError if the connection ends early.
        """
        http = self._require_http()
        request = request.streaming()
        self._record_started(request.model)
        start_usage: Usage | None = None
        final_usage: Usage | None = None

        try:
            async with http.stream("POST", MESSAGES_PATH, json=request.to_payload()) as response:
                if response.status_code != 200:
                    await response.aread()
                    raise _error_from_response(response)

                async with aclosing(aiter_events(response.aiter_lines())) as events:
                    async for event in events:
                        if isinstance(event, ErrorEvent):
                            if event.error_type is not None:
                                logger.warning("Stream error event: %s", event.message)
                                self._record_failed(request.model, _stream_error(event))
                                yield event
                                return
                            logger.warning("Skipping undecodable stream event: %s", event.message)
                        elif isinstance(event, MessageStart):
                            start_usage = event.usage
                        elif isinstance(event, (MessageDelta, MessageStop)) and event.usage is not None:
                            final_usage = event.usage
                        yield event
        except httpx.TimeoutException as e:
            error = TransportError(f"Stream timed out: {e}")
            self._record_failed(request.model, error)
            raise error from e
        except httpx.HTTPError as e:
            error = TransportError(f"HTTP error during stream: {e}")
            self._record_failed(request.model, error)
            raise error from e
        except ParleyError as e:
            self._record_failed(request.model, e)
            raise

        if final_usage is not None:
            if final_usage.input_tokens == 0 and start_usage is not None:
                final_usage = final_usage.model_copy(update={"input_tokens": start_usage.input_tokens})
            self._record_completed(request.model, final_usage)

    async def stream_text(self, request: MessagesRequest) -> AsyncGenerator[str, None]:
        """Yield text fragments as they arrive.

        Fragments already yielded are never retracted; a service error
        event raises StreamError after them.
        """
        async with aclosing(self.stream(request)) as events:
            async for event in events:
                if isinstance(event, ErrorEvent) and event.error_type is not None:
                    raise _stream_error(event)
                if isinstance(event, ContentBlockDelta) and event.text:
                    yield event.text

    async def stream_response(self, request: MessagesRequest) -> MessagesResponse:
        """Stream the request and assemble the complete response."""
        assembler = StreamAssembler()
        async with aclosing(self.stream(request)) as events:
            async for event in events:
                if isinstance(event, ErrorEvent) and event.error_type is not None:
                    raise _stream_error(event)
                assembler.feed(event)
        result = assembler.result()
        if result is None:
            raise MalformedResponseError("Stream ended without message_start or usage")
        return result

    # ------------------------------------------------------------------
    # Conveniences
    # ------------------------------------------------------------------

    async def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        """Single-prompt completion returning the response text."""
        request = self.build_request(
            [Message.user(prompt)],
            system=system,
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        response = await self.send(request)
        return response.text_content

    async def stream_complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> AsyncGenerator[str, None]:
        request = self.build_request(
            [Message.user(prompt)],
            system=system,
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        async with aclosing(self.stream_text(request)) as fragments:
            async for fragment in fragments:
                yield fragment

    # ------------------------------------------------------------------
    # Usage hooks
    # ------------------------------------------------------------------

    def _record_started(self, model: str) -> None:
        if self.usage is not None:
            self.usage.record_started(model)

    def _record_completed(self, model: str, usage: Usage) -> None:
        if self.usage is not None:
            self.usage.record_completed(model, usage)

    def _record_failed(self, model: str, error: BaseException) -> None:
        if self.usage is not None:
            self.usage.record_failed(model, error)
