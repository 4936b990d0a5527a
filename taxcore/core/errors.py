import logging
import uuid
from fastapi import Request
from fastapi.responses import JSONResponse

from taxcore.core.exceptions import TaxCoreException

logger = logging.getLogger("taxcore.errors")


def register_error_handlers(app):
    @app.exception_handler(TaxCoreException)
    async def tax_core_exception(request: Request, exc: TaxCoreException):
        if exc.status_code >= 500:
            logger.error(
                "Tax computation failed code=%s path=%s details=%s",
                exc.code,
                request.url.path,
                exc.details,
            )
        else:
            logger.info("Rejected request code=%s path=%s", exc.code, request.url.path)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception):  # noqa: BLE001
        correlation_id = uuid.uuid4().hex
        logger.exception("Unhandled error cid=%s path=%s method=%s", correlation_id, request.url.path, request.method)
        return JSONResponse(status_code=500, content={"detail": "Internal server error", "cid": correlation_id})

    return app
