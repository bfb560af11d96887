from loguru import logger
from starlette.datastructures import Headers, MutableHeaders
from starlette.responses import PlainTextResponse
from starlette.types import Receive, Scope, Send

from .headers import FALLBACK_TEXT, ResourceExhausted, negotiate
from .table import TranslationTable


class AcceptLanguageHandler:
    """
    ASGI endpoint answering with the translations the client accepts,
    best quality first, as a text/plain body.
    """

    def __init__(
        self,
        table: TranslationTable,
        fallback_text: str = FALLBACK_TEXT,
    ) -> None:
        self.table = table
        self.fallback_text = fallback_text

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        assert scope["type"] == "http"

        headers = Headers(scope=scope)
        try:
            chain = negotiate(
                headers.get("accept-language"), self.table, self.fallback_text
            )
            chunks = chain.chunks()
        except (ResourceExhausted, MemoryError):
            logger.exception("Negotiation failed for {}", scope.get("path"))
            response = PlainTextResponse("Internal Server Error", status_code=500)
            await response(scope, receive, send)
            return

        response_headers = MutableHeaders()
        response_headers["Content-Type"] = "text/plain; charset=utf-8"
        response_headers["Content-Length"] = str(sum(len(c) for c in chunks))
        await send(
            {
                "type": "http.response.start",
                "status": 200,
                "headers": response_headers.raw,
            }
        )

        if scope["method"] == "HEAD":
            await send({"type": "http.response.body", "body": b""})
            return

        # One body message per chunk, the last one closes the response.
        for index, chunk in enumerate(chunks):
            await send(
                {
                    "type": "http.response.body",
                    "body": chunk,
                    "more_body": index < len(chunks) - 1,
                }
            )
