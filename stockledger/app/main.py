from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from stockledger.app.api.v1.router import router as v1_router
from stockledger.app.core.config import Settings, get_settings
from stockledger.app.core.errors import InternalError, LedgerError, ValidationError
from stockledger.app.core.logging import configure_logging, get_logger
from stockledger.services.authz import PermissionPolicy, load_policy

logger = get_logger("api")


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        if isinstance(exc, InternalError):
            logger.error("internal error", exc_info=exc, extra={"path": request.url.path})
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        err = ValidationError(
            "Datos inválidos",
            errors=[
                {"loc": [str(p) for p in e.get("loc", ())], "msg": e.get("msg", "")}
                for e in exc.errors()
            ],
        )
        return JSONResponse(status_code=err.status_code, content=err.to_payload())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"message": exc.detail})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        # détail complet en log, message générique côté client
        logger.error("unhandled error", exc_info=exc, extra={"path": request.url.path})
        return JSONResponse(status_code=500, content=InternalError().to_payload())


def create_app(settings: Settings | None = None, policy: PermissionPolicy | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level, json_output=settings.log_json)

    app = FastAPI(title="Stock Ledger", version="0.1.0")
    # table de permissions figée pour toute la vie du process
    app.state.policy = policy or load_policy(settings.permissions_file)

    _register_error_handlers(app)
    app.include_router(v1_router, prefix="/v1")
    return app


app = create_app()
