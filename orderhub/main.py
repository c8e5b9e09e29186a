import logging
import threading
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from orderhub import config
from orderhub.deps import build_crm_consumer, close_resources
from orderhub.errors import OrderHubError
from orderhub.routers.customers import router as customers_router
from orderhub.routers.orders import router as orders_router

logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
logger = logging.getLogger(__name__)

CONSUMER_STOP_TIMEOUT = 30


@asynccontextmanager
async def lifespan(app: FastAPI):
    consumer, thread = None, None
    if config.RUN_CONSUMERS:
        consumer = build_crm_consumer()
        thread = threading.Thread(target=consumer.run, name="crm-consumer", daemon=True)
        thread.start()
        logger.info("CRM consumer started in background")

    yield

    if consumer is not None:
        consumer.stop()
        thread.join(timeout=CONSUMER_STOP_TIMEOUT)
        if thread.is_alive():
            logger.warning("CRM consumer did not stop in time")
    close_resources()


app = FastAPI(title="OrderHub Order Distribution API", lifespan=lifespan)

app.include_router(orders_router)
app.include_router(customers_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(OrderHubError)
async def orderhub_error_handler(request: Request, exc: OrderHubError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error_message": exc.message},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = [
        f"{'.'.join(str(p) for p in err['loc'] if p != 'body')}: {err['msg']}"
        for err in exc.errors()[:3]
    ]
    return JSONResponse(
        status_code=400,
        content={"success": False, "error_message": "Invalid request: " + "; ".join(problems)},
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "error_message": "Internal server error"},
    )


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
