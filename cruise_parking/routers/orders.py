from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session
from typing import Optional

from ..database import get_db
from ..schemas.order import WooOrder, OrderResponse
from ..schemas.pagination import PaginatedResponse
from ..services.order_service import OrderService, to_order_response
from ..utils.rate_limiter import limiter, get_rate_limit

router = APIRouter(prefix="/api/orders", tags=["Orders"])


@router.get("", response_model=PaginatedResponse[OrderResponse])
@router.get("/", response_model=PaginatedResponse[OrderResponse])
def list_orders(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    order_status: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db)
):
    """Stored orders, newest first, in WooCommerce shape"""
    return OrderService(db).list_orders(page, page_size, order_status)


@router.get("/{external_id}", response_model=OrderResponse)
def get_order(external_id: int, db: Session = Depends(get_db)):
    return to_order_response(OrderService(db).get_order(external_id))


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("order_write"))
def create_order(
    request: Request,
    payload: WooOrder,
    db: Session = Depends(get_db)
):
    """
    Store an order posted in WooCommerce shape.
    The daily aggregate is rebuilt before the response is sent.
    """
    order = OrderService(db).create_order(payload)
    return to_order_response(order)


@router.put("/{external_id}", response_model=OrderResponse)
@limiter.limit(get_rate_limit("order_write"))
def replace_order(
    request: Request,
    external_id: int,
    payload: WooOrder,
    db: Session = Depends(get_db)
):
    """Replace an order and all of its line items"""
    order = OrderService(db).replace_order(external_id, payload)
    return to_order_response(order)


@router.delete("/{external_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(get_rate_limit("order_write"))
def delete_order(
    request: Request,
    external_id: int,
    db: Session = Depends(get_db)
):
    OrderService(db).delete_order(external_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
