import logging
import os
from functools import lru_cache

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from checkout import CheckoutService
from database import get_database
from errors import CheckoutError, ValidationError
from schemas import CaptureRequest, CheckoutRequest, CheckoutSession, OrderListResponse, OrderResponse
from settings import get_settings

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Shop Checkout API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache()
def get_checkout_service() -> CheckoutService:
    return CheckoutService.from_settings(get_database(), get_settings())


# Errors

@app.exception_handler(CheckoutError)
async def checkout_error_handler(request: Request, exc: CheckoutError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("%s %s crashed", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "message": CheckoutError.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ())[1:])
        problems.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return JSONResponse(
        status_code=ValidationError.status_code,
        content={"success": False, "message": "; ".join(problems) or ValidationError.message},
    )


@app.get("/")
async def root():
    return {"message": "Shop Checkout Backend Running"}


@app.get("/test")
def test_database():
    info = {
        "backend": "running",
        "database": "unavailable",
        "collections": [],
    }
    try:
        db = get_database()
        info["collections"] = db.list_collection_names()
        info["database"] = "connected"
    except PyMongoError as e:
        info["database"] = f"error: {str(e)[:80]}"
    return info


# Orders
@app.post("/api/shop/order/create", response_model=CheckoutSession)
def create_order(payload: CheckoutRequest, service: CheckoutService = Depends(get_checkout_service)):
    return service.initiate(payload)


@app.post("/api/shop/order/capture", response_model=OrderResponse)
def capture_payment(payload: CaptureRequest, service: CheckoutService = Depends(get_checkout_service)):
    order = service.capture(payload.order_id, payload.payment_token, payload.payer_id)
    return OrderResponse(message="Order confirmed", data=order)


@app.get("/api/shop/order/list/{user_id}", response_model=OrderListResponse)
def list_orders(user_id: str, service: CheckoutService = Depends(get_checkout_service)):
    return OrderListResponse(data=service.list_orders(user_id))


@app.get("/api/shop/order/details/{order_id}", response_model=OrderResponse)
def get_order_details(order_id: str, service: CheckoutService = Depends(get_checkout_service)):
    return OrderResponse(data=service.get_order(order_id))


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
