"""HTTP mapping for the ordering error taxonomy.

Protean's own handlers cover ValidationError (400) and ObjectNotFoundError
(404). The guard errors subclass ValidationError, and Starlette resolves
handlers along the exception's MRO, so the handlers registered here take
precedence for them.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ordering.errors import InvalidTransition, OrderNotPayable, StaleIntent
from ordering.gateway.port import GatewayUnavailable

logger = structlog.get_logger(__name__)


async def _conflict_handler(request: Request, exc: InvalidTransition | OrderNotPayable | StaleIntent) -> JSONResponse:
    logger.info(
        "Request rejected by order guard",
        path=request.url.path,
        error=type(exc).__name__,
        messages=exc.messages,
    )
    return JSONResponse(status_code=409, content={"error": exc.messages})


async def _gateway_unavailable_handler(request: Request, exc: GatewayUnavailable) -> JSONResponse:
    logger.error("Payment gateway unavailable", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=503,
        content={"error": {"gateway": ["Payment gateway is unavailable, please retry later"]}},
    )


def register_ordering_exception_handlers(app: FastAPI) -> None:
    """Register after ``protean.integrations.fastapi.register_exception_handlers``."""
    app.add_exception_handler(InvalidTransition, _conflict_handler)
    app.add_exception_handler(OrderNotPayable, _conflict_handler)
    app.add_exception_handler(StaleIntent, _conflict_handler)
    app.add_exception_handler(GatewayUnavailable, _gateway_unavailable_handler)
