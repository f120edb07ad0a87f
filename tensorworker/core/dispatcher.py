"""Worker message dispatcher.

Sole entry point for inbound requests. Every inbound message produces exactly
one outbound message; recoverable failures never escape ``handle``.
Requests are serialized: a request's engine work starts only after the
previous request's response was posted, so responses keep request order.
"""
from __future__ import annotations
from typing import Any, Callable, Dict, Optional
import asyncio
import time

from .engine import TensorEngine
from .errors import ProtocolError, WorkerError
from .logging import core_logger, summarize_for_log
from . import protocol

PostFn = Callable[[Dict[str, Any]], None]


def _message_of(e: Exception) -> str:
    if isinstance(e, WorkerError):
        return e.message or type(e).__name__
    return str(e) or type(e).__name__


class Dispatcher:
    def __init__(self, engine: TensorEngine, post: Optional[PostFn] = None):
        self.engine = engine
        self._post = post
        self._lock = asyncio.Lock()
        self.handled = 0

    async def handle(self, message: Any) -> Dict[str, Any]:
        async with self._lock:
            start = time.time()
            response = await self._route(message)
            out = response.to_message()
            self.handled += 1
            core_logger.debug(
                f"handled type={out['type']} success={out.get('success')} ms={round((time.time() - start) * 1000, 2)}"
            )
            if self._post is not None:
                self._post(out)
            return out

    async def _route(self, message: Any) -> protocol.Response:
        try:
            request = protocol.decode_request(message)
        except ProtocolError as e:
            core_logger.warning(f"protocol error kind={e.kind} msg={e.message} message={summarize_for_log(message)}")
            return protocol.error_response(e.message)
        if isinstance(request, protocol.LoadModelRequest):
            return await self._load_model(request.payload.model_url)
        return self._process_input(request.payload.input)

    async def _load_model(self, uri: str) -> protocol.Response:
        try:
            await self.engine.load_model(uri)
        except Exception as e:  # noqa: BLE001 - converted to MODEL_LOADED failure
            kind = getattr(e, "kind", "unexpected")
            core_logger.error(f"load failed kind={kind} uri={uri} error={_message_of(e)}")
            return protocol.model_loaded(False, error=_message_of(e))
        return protocol.model_loaded(True)

    def _process_input(self, values: Any) -> protocol.Response:
        try:
            result = self.engine.process(values)
        except Exception as e:  # noqa: BLE001 - converted to PROCESS_COMPLETE failure
            kind = getattr(e, "kind", "unexpected")
            core_logger.error(f"process failed kind={kind} input={summarize_for_log(values)} error={_message_of(e)}")
            return protocol.process_complete(False, error=_message_of(e))
        return protocol.process_complete(True, result=result)


__all__ = ["Dispatcher", "PostFn"]
