"""
ASGI middleware that times each HTTP request and reports it to a Jarmo
collector as a single UDP datagram.

Install it once on the application:

    app.add_middleware(JarmoMiddleware, settings=get_settings(port=9000))

Nothing is measured or sent unless JARMO_ENABLE is set, so development
environments need no extra configuration.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from jarmo.config.settings import ENABLE_ENV, Settings, get_settings, is_enabled
from jarmo.core.lifecycle import RequestTimer
from jarmo.transport.udp import UdpTransmitter

logger = logging.getLogger(__name__)


@dataclass
class ResponseInfo:
    """What the middleware has seen of the outgoing response."""
    status_code: int = 0
    headers: Headers = field(default_factory=Headers)


class JarmoMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        settings: Optional[Settings] = None,
        *,
        enabled: Optional[bool] = None,
        transmitter: Optional[UdpTransmitter] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.app = app
        self.enabled = is_enabled() if enabled is None else enabled
        self.settings: Optional[Settings] = None
        self.transmitter: Optional[UdpTransmitter] = None
        self._clock = clock

        if not self.enabled:
            logger.info(
                "By default 'jarmo' is disabled, you can enable it by setting "
                "the %s environment variable.",
                ENABLE_ENV,
            )
            return

        self.settings = settings or get_settings()
        self.transmitter = transmitter or UdpTransmitter()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if not self.enabled or scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        timer = RequestTimer(started_at=self._clock())
        request = Request(scope)
        response = ResponseInfo()
        subscribed = True
        started = False
        transport_failed = False

        def unsubscribe() -> None:
            nonlocal subscribed
            subscribed = False

        timer.on_cleanup = unsubscribe

        async def receive_wrapper() -> Message:
            nonlocal transport_failed
            try:
                message = await receive()
            except Exception:
                transport_failed = True
                raise
            if subscribed and message["type"] == "http.disconnect" and timer.close():
                timer.cleanup()
            return message

        async def send_wrapper(message: Message) -> None:
            nonlocal started, transport_failed
            if message["type"] == "http.response.start":
                started = True
                if subscribed:
                    response.status_code = message["status"]
                    response.headers = Headers(raw=message.get("headers", []))

            try:
                await send(message)
            except Exception:
                transport_failed = True
                raise

            if (
                subscribed
                and message["type"] == "http.response.body"
                and not message.get("more_body", False)
                and timer.finish()
            ):
                self._report(timer, request, response)

        try:
            await self.app(scope, receive_wrapper, send_wrapper)
        except Exception:
            if not transport_failed and not started and timer.finish():
                # the server turns an unhandled exception into a 500
                response.status_code = 500
                self._report(timer, request, response)
            elif timer.error():
                timer.cleanup()
            raise
        finally:
            # app returned (or was cancelled) without completing the response
            if timer.close():
                timer.cleanup()

    def _report(self, timer: RequestTimer, request: Request, response: ResponseInfo) -> None:
        settings = self.settings
        duration = timer.elapsed_ms(self._clock())

        try:
            payload = settings.resolve(request, response, duration)
        except Exception:
            timer.cleanup()
            raise

        if not payload:
            timer.cleanup()
            return

        def on_sent(err: Optional[Exception]) -> None:
            try:
                if err is not None:
                    settings.on_error(err)
            finally:
                timer.cleanup()

        self.transmitter.send(settings.host, settings.port, payload, on_sent)
