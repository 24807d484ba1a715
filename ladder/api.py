from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .logging_config import setup_logging
from .services.exceptions import ServiceError
from .storage import STORE_ERRORS
from .routes.users import router as users_router
from .routes.ladders import router as ladders_router
from .routes.matches import router as matches_router

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Pickleball Ladder League")


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request, exc):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(ServiceError)
def service_error_handler(request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def store_error_handler(request, exc):
    logger.error("Data store failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "Data store unavailable, please retry"},
    )


for _exc in STORE_ERRORS:
    app.add_exception_handler(_exc, store_error_handler)

app.include_router(users_router)
app.include_router(ladders_router)
app.include_router(matches_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
