from fastapi import FastAPI

from taxcore.api.routes_health import router as health_router
from taxcore.api.routes_tax import router as tax_router
from taxcore.core.config import settings
from taxcore.core.errors import register_error_handlers
from taxcore.core.logger import init_logging
from taxcore.rules.loader import validate_all_rule_sets


def create_app() -> FastAPI:
    init_logging()
    # Fail fast on a malformed rule set rather than on the first request
    validate_all_rule_sets()

    is_production = settings.ENV.lower() == "prod"
    app = FastAPI(
        title=settings.APP_NAME,
        debug=False,
        docs_url=None if is_production else "/docs",
        redoc_url=None if is_production else "/redoc",
        openapi_url=None if is_production else "/openapi.json",
    )
    register_error_handlers(app)
    app.include_router(tax_router)
    app.include_router(health_router)
    return app


app = create_app()
