"""
Customer Order Routes
Checkout, order tracking and customer messages for the storefront
"""

import logging
import orjson
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from utils.exception_handler import (
    OrderDeskError,
    NotFoundError,
    ValidationError,
    user_message_for,
    http_status_for,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["orders"])


def error_response(error: Exception, context: str) -> JSONResponse:
    if isinstance(error, OrderDeskError):
        logger.warning(f"⚠️ {context}: {error.kind}")
        if isinstance(error, NotFoundError):
            message = "Order not found."
        elif isinstance(error, ValidationError):
            message = error.message
        else:
            message = user_message_for(error)
        return JSONResponse(status_code=http_status_for(error), content={"success": False, "message": message})
    logger.exception(f"❌ {context}: unexpected error")
    return JSONResponse(status_code=500, content={"success": False, "message": "Server error."})


async def read_json(request: Request) -> dict:
    """Parse the request body as a JSON object; anything else is a ValidationError"""
    try:
        data = orjson.loads(await request.body())
    except orjson.JSONDecodeError:
        raise ValidationError("Invalid JSON body.")
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON body.")
    return data


@router.post("/checkout")
async def checkout(request: Request):
    """Create an order from the checkout form"""
    services = request.app.state.services
    try:
        data = await read_json(request)
        logger.info(f"🛒 POST /checkout for product {data.get('productName')!r}")
        order = await services.checkout.place_order(
            product_name=data.get("productName"),
            quantity=data.get("quantity"),
            payment_info=data.get("paymentInfo"),
            transaction_id=data.get("transactionId"),
            note=data.get("note"),
        )
    except Exception as e:
        return error_response(e, "POST /checkout")
    return {"success": True, "orderNumber": order.order_number}


@router.get("/api/track-order/{order_number}")
async def track_order(order_number: str, request: Request):
    services = request.app.state.services
    try:
        order = await services.checkout.track_order(order_number)
    except Exception as e:
        return error_response(e, "GET /api/track-order")
    return {"success": True, "order": order.to_dict()}


@router.post("/api/add-message")
async def add_message(request: Request):
    """Append a customer message to an order thread"""
    services = request.app.state.services
    try:
        data = await read_json(request)
        order = await services.checkout.post_message(data.get("orderId"), data.get("userMessage"))
    except Exception as e:
        return error_response(e, "POST /api/add-message")
    return {"success": True, "messages": [message.to_dict() for message in order.messages]}
