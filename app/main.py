import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.logging import configure_logging
from app.api.v1.api import api_router
from app.services.errors import PaymentError

configure_logging()
logger = logging.getLogger("app")

app = FastAPI(title=settings.APP_NAME)

# Browser app origins; CORS_ORIGINS overrides in deployed environments
_dev_origins = ["http://localhost:8080", "http://localhost:5173"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()] or _dev_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type", "stripe-signature"],
)


@app.exception_handler(PaymentError)
async def payment_error_handler(request: Request, exc: PaymentError):
    if exc.status_code >= 500:
        logger.error("%s %s failed (%s): %s", request.method, request.url.path, exc.provider or "-", exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(api_router)


@app.get("/health")
def health():
    return {"status": "ok", "env": settings.ENV}
