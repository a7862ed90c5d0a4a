"""
Admin Order Routes
JSON API for the web dashboard: list, status changes, operator messages and archive management
"""

import hmac
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Request

from config import Config
from models import MessageSender
from routes.customer_orders import error_response, read_json
from services.order_lifecycle import parse_status
from services.order_store import OrderFilter, OrderSelector, OrderSort
from utils.exception_handler import ValidationError

logger = logging.getLogger(__name__)


async def require_admin_token(x_admin_token: Optional[str] = Header(default=None)) -> None:
    """Reject requests without the configured X-Admin-Token"""
    expected = Config.ADMIN_API_TOKEN
    if not expected:
        logger.warning("🚫 Admin API called but ADMIN_API_TOKEN is not configured")
        raise HTTPException(status_code=503, detail="Admin API is disabled.")
    if not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        logger.warning("🚫 Admin API request with missing or invalid token")
        raise HTTPException(status_code=401, detail="Unauthorized.")


router = APIRouter(
    prefix="/admin/api/orders",
    tags=["admin"],
    dependencies=[Depends(require_admin_token)],
)


def _parse_archived(value: Optional[str]) -> Optional[bool]:
    if value is None or value == "" or value.lower() == "all":
        return None
    if value.lower() in ("1", "true", "yes"):
        return True
    if value.lower() in ("0", "false", "no"):
        return False
    raise ValidationError("archived must be true, false or all.", field="archived")


@router.get("")
async def list_orders(
    request: Request,
    status: Optional[str] = None,
    q: Optional[str] = None,
    archived: Optional[str] = "false",
):
    """Dashboard listing: unread customer messages first, then newest"""
    lifecycle = request.app.state.services.lifecycle
    try:
        order_filter = OrderFilter(
            status=parse_status(status) if status else None,
            archived=_parse_archived(archived),
            search=q,
        )
        orders = await lifecycle.list(order_filter, OrderSort.UNREAD_FIRST)
        unread = await lifecycle.count(OrderFilter(archived=False, unread_only=True))
    except Exception as e:
        return error_response(e, "GET /admin/api/orders")
    return {
        "success": True,
        "orders": [order.to_dict(include_messages=False) for order in orders],
        "count": len(orders),
        "unreadCount": unread,
    }


@router.get("/{order_id}")
async def get_order(order_id: str, request: Request):
    lifecycle = request.app.state.services.lifecycle
    try:
        order = await lifecycle.require(OrderSelector.by_id(order_id))
    except Exception as e:
        return error_response(e, "GET /admin/api/orders/{id}")
    return {"success": True, "order": order.to_dict()}


@router.post("/{order_id}/status")
async def update_status(order_id: str, request: Request):
    lifecycle = request.app.state.services.lifecycle
    try:
        data = await read_json(request)
        order = await lifecycle.transition_status(OrderSelector.by_id(order_id), data.get("status"))
    except Exception as e:
        return error_response(e, "POST /admin/api/orders/{id}/status")
    return {"success": True, "order": order.to_dict(include_messages=False)}


@router.post("/{order_id}/messages")
async def send_message(order_id: str, request: Request):
    """Operator message from the dashboard; clears the unread flag"""
    lifecycle = request.app.state.services.lifecycle
    try:
        data = await read_json(request)
        order = await lifecycle.append_message(OrderSelector.by_id(order_id), MessageSender.OPERATOR, data.get("text"))
    except Exception as e:
        return error_response(e, "POST /admin/api/orders/{id}/messages")
    return {"success": True, "messages": [message.to_dict() for message in order.messages]}


@router.post("/{order_id}/archive")
async def archive_order(order_id: str, request: Request):
    lifecycle = request.app.state.services.lifecycle
    try:
        order = await lifecycle.set_archived(OrderSelector.by_id(order_id), True)
    except Exception as e:
        return error_response(e, "POST /admin/api/orders/{id}/archive")
    return {"success": True, "order": order.to_dict(include_messages=False)}


@router.post("/{order_id}/unarchive")
async def unarchive_order(order_id: str, request: Request):
    lifecycle = request.app.state.services.lifecycle
    try:
        order = await lifecycle.set_archived(OrderSelector.by_id(order_id), False)
    except Exception as e:
        return error_response(e, "POST /admin/api/orders/{id}/unarchive")
    return {"success": True, "order": order.to_dict(include_messages=False)}


@router.post("/{order_id}/acknowledge")
async def acknowledge_order(order_id: str, request: Request):
    lifecycle = request.app.state.services.lifecycle
    try:
        order = await lifecycle.acknowledge(OrderSelector.by_id(order_id))
    except Exception as e:
        return error_response(e, "POST /admin/api/orders/{id}/acknowledge")
    return {"success": True, "order": order.to_dict(include_messages=False)}


@router.delete("/{order_id}")
async def delete_archived_order(order_id: str, request: Request):
    """Only archived orders can be deleted; anything else is reported as not found"""
    lifecycle = request.app.state.services.lifecycle
    try:
        order = await lifecycle.delete_archived(OrderSelector.by_id(order_id))
    except Exception as e:
        return error_response(e, "DELETE /admin/api/orders/{id}")
    logger.info(f"🗑️ Dashboard deleted archived order {order.order_number}")
    return {"success": True, "orderNumber": order.order_number}
