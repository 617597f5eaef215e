import logging
import uuid
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from orders_service import config, messages
from orders_service.deps import get_publisher, get_store
from orders_service.errors import OrderServiceError, http_status_for
from orders_service.routers.orders import router as orders_router

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Infra Orders Service")

app.include_router(orders_router)

app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=config.CORS_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def error_body(status: int, error: str, message: str) -> dict:
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "status": status,
        "error": error,
        "message": message,
    }


@app.exception_handler(OrderServiceError)
async def order_service_error_handler(request: Request, exc: OrderServiceError):
    status = http_status_for(exc)
    logger.error(f"{type(exc).__name__} occurred: {exc.message} ({exc.kind.value})")
    return JSONResponse(status_code=status, content=error_body(status, exc.label, exc.message))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", messages.INVALID_REQUEST) if errors else messages.INVALID_REQUEST
    logger.error(f"Validation Exception occurred: {message}")
    return JSONResponse(status_code=400, content=error_body(400, "Validation Error", message))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    error_id = str(uuid.uuid4())
    logger.error(f"Unhandled exception occurred. Error ID: {error_id}. Message: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=error_body(500, "Internal Server Error", messages.INTERNAL_ERROR % error_id),
    )


@app.on_event("startup")
def startup():
    if config.DATABASE_URL:
        get_store().init_schema()
    else:
        logger.warning("DATABASE_URL not set; skipping schema initialisation")


@app.on_event("shutdown")
def shutdown():
    get_publisher().close()


@app.get("/health")
def health():
    return {"ok": True}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
