import time
import uuid
import logging
from fastapi import Request

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


async def logging_middleware(request: Request, call_next):
    """
    Tag every HTTP request with an id and log its outcome and duration.

    A client-supplied `X-Request-ID` is kept so one id can follow a call
    across services; otherwise a fresh one is generated.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    request.state.request_id = request_id
    started = time.perf_counter()

    logger.info(f"request_started id={request_id} method={request.method} path={request.url.path}")

    try:
        response = await call_next(request)
    except Exception:
        logger.exception(f"request_crashed id={request_id} path={request.url.path}")
        raise

    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(
        f"request_finished id={request_id} status={response.status_code} duration_ms={elapsed_ms:.1f}"
    )
    response.headers[REQUEST_ID_HEADER] = request_id
    return response
