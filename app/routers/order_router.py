"""订单管理 API 路由"""

from datetime import datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, Body, HTTPException, Path, Query
import logging

from app.core.config import settings
from app.core.dependencies import OrderServiceDep, PrincipalDep
from app.core.exceptions import InternalError, Unauthenticated
from app.models.order import OrderStatus
from app.services.access_policy import Grant, OrderScope, Principal, access_policy
from app.services.order_service import OrderService
from app.schemas.base import ErrorResponse
from app.schemas.order import (
    AnalyticsResponse,
    CancelOrderRequest,
    CreateOrderRequest,
    CreateOrderResponse,
    OrderDetailResponse,
    OrderItemResponse,
    OrderListResponse,
    OrderResponse,
    OrderUpdateResponse,
    OrderWithItemsResponse,
    UpdateStatusRequest,
    VendorOrderListResponse,
    VendorUpdateStatusRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/orders",
    tags=["订单管理"],
    responses={
        400: {"model": ErrorResponse, "description": "请求参数错误 / 库存不足 / 状态不允许"},
        401: {"model": ErrorResponse, "description": "未登录"},
        403: {"model": ErrorResponse, "description": "无权访问"},
        404: {"model": ErrorResponse, "description": "订单未找到"},
        422: {"model": ErrorResponse, "description": "请求验证失败"},
        500: {"model": ErrorResponse, "description": "服务器内部错误"}
    }
)

OrderIdPath = Path(..., gt=0, description="订单ID", examples=[1])


def _order_list(orders) -> List[OrderResponse]:
    return [OrderResponse.model_validate(order) for order in orders]


def _with_items(order, items) -> OrderWithItemsResponse:
    return OrderWithItemsResponse(
        **OrderResponse.model_validate(order).model_dump(),
        items=[OrderItemResponse.model_validate(item) for item in items],
    )


def _require_principal(principal: Optional[Principal]) -> Principal:
    if principal is None:
        raise Unauthenticated()
    return principal


@router.get(
    "",
    response_model=OrderListResponse,
    summary="查询订单列表",
    description="""管理员可查看全部订单（支持筛选和分页），其他用户只能查看自己的订单。

    **管理员筛选条件：**
    - status / customer_id
    - search：用户名、邮箱、订单号模糊匹配
    - start_date / end_date：下单时间范围
    """,
)
async def list_orders(
    limit: int = Query(20, ge=1, le=100, description="每页数量"),
    offset: int = Query(0, ge=0, description="偏移量"),
    status: Optional[OrderStatus] = Query(None, description="订单状态"),
    customer_id: Optional[int] = Query(None, gt=0, description="下单用户ID（仅管理员）"),
    search: Optional[str] = Query(None, max_length=100, description="搜索关键字（仅管理员）"),
    start_date: Optional[datetime] = Query(None, description="开始时间（仅管理员）"),
    end_date: Optional[datetime] = Query(None, description="结束时间（仅管理员）"),
    principal: Optional[Principal] = PrincipalDep,
    service: OrderService = OrderServiceDep,
):
    try:
        principal = _require_principal(principal)
        if principal.is_admin:
            filters = {
                "status": status,
                "customer_id": customer_id,
                "search": search,
                "start_date": start_date,
                "end_date": end_date,
            }
            result = service.get_all(filters, limit, offset)
            orders = _order_list(result["orders"])
            return OrderListResponse(
                success=True,
                orders=orders,
                count=len(orders),
                pagination=result["pagination"],
            )

        orders = _order_list(service.get_by_customer(principal.id, limit, offset, status))
        return OrderListResponse(success=True, orders=orders, count=len(orders))
    except HTTPException:
        # 透传 HTTPException
        raise
    except Exception as e:
        logger.error(f"查询订单列表失败: {str(e)}")
        raise InternalError(str(e))


@router.post(
    "",
    response_model=CreateOrderResponse,
    status_code=201,
    summary="创建订单",
    description="""创建订单并扣减库存，成功后通知订单中涉及的每一位商家。

    **特点：**
    - 订单、明细、库存扣减在同一事务中完成，任一商品库存不足则整体回滚
    - 库存扣减为单条条件更新语句，高并发下不会超卖
    - 订单总额按下单单价计算，之后不再重算
    - 通知失败不影响订单创建结果
    """,
    responses={
        400: {
            "description": "库存不足",
            "content": {
                "application/json": {
                    "example": {
                        "success": False,
                        "error": "insufficient_stock",
                        "message": "库存不足: 商品 1",
                        "product_id": 1
                    }
                }
            }
        }
    }
)
async def create_order(
    request: CreateOrderRequest = Body(..., description="创建订单请求"),
    principal: Optional[Principal] = PrincipalDep,
    service: OrderService = OrderServiceDep,
):
    """创建订单（核心接口）"""
    try:
        principal = _require_principal(principal)
        order, items, vendors_notified = service.place_order(
            principal,
            request.items,
            request.shipping_address,
            request.payment_method,
            request.notes,
        )
        return CreateOrderResponse(
            success=True,
            message="订单创建成功",
            order=_with_items(order, items),
            vendors_notified=vendors_notified,
        )
    except HTTPException:
        # 透传 HTTPException
        raise
    except Exception as e:
        logger.error(f"创建订单失败: {str(e)}")
        # 未知异常统一抛 500
        raise InternalError(str(e))


@router.get(
    "/analytics/summary",
    response_model=AnalyticsResponse,
    summary="订单统计（管理员）",
    description="统计时间段内的订单数、销售额、客单价及各状态订单数，默认最近30天。",
)
async def get_analytics(
    start_date: Optional[datetime] = Query(None, description="开始时间"),
    end_date: Optional[datetime] = Query(None, description="结束时间"),
    principal: Optional[Principal] = PrincipalDep,
    service: OrderService = OrderServiceDep,
):
    try:
        access_policy.require_admin(principal)
        end_date = end_date or datetime.utcnow()
        start_date = start_date or end_date - timedelta(days=settings.ANALYTICS_DEFAULT_DAYS)
        analytics = service.get_analytics(start_date, end_date)
        return AnalyticsResponse(success=True, analytics=analytics)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"订单统计失败: {str(e)}")
        raise InternalError(str(e))


@router.get(
    "/admin/recent",
    response_model=OrderListResponse,
    summary="最近订单（管理员）",
)
async def get_recent_orders(
    limit: int = Query(10, ge=1, le=100),
    principal: Optional[Principal] = PrincipalDep,
    service: OrderService = OrderServiceDep,
):
    try:
        access_policy.require_admin(principal)
        result = service.get_all({}, limit, 0)
        orders = _order_list(result["orders"])
        return OrderListResponse(success=True, orders=orders, count=len(orders), pagination=result["pagination"])
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"查询最近订单失败: {str(e)}")
        raise InternalError(str(e))


@router.get(
    "/vendor/orders",
    response_model=VendorOrderListResponse,
    summary="商家订单列表",
    description="""商家只能看到包含自己商品的订单；管理员可通过 vendor_id 查看指定商家。

    每个订单附带的明细只包含该商家自己的商品，其他商家的明细不会出现。
    """,
)
async def get_vendor_orders(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    status: Optional[OrderStatus] = Query(None),
    vendor_id: Optional[int] = Query(None, gt=0, description="商家ID（仅管理员）"),
    principal: Optional[Principal] = PrincipalDep,
    service: OrderService = OrderServiceDep,
):
    try:
        grant = access_policy.require_vendor_access(principal)
        target_vendor_id = (vendor_id or principal.id) if grant == Grant.ADMIN else principal.id
        orders = [
            _with_items(order, items)
            for order, items in service.get_vendor_orders_with_items(target_vendor_id, limit, offset, status)
        ]
        return VendorOrderListResponse(success=True, orders=orders, count=len(orders))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"查询商家订单失败: {str(e)}")
        raise InternalError(str(e))


@router.get(
    "/vendor/{order_id}/details",
    response_model=OrderDetailResponse,
    summary="商家订单详情",
    description="商家只能看到订单中属于自己的商品明细。",
)
async def get_vendor_order_details(
    order_id: int = OrderIdPath,
    principal: Optional[Principal] = PrincipalDep,
    service: OrderService = OrderServiceDep,
):
    try:
        order, grant = service.authorize(principal, order_id, OrderScope.VENDOR)
        if grant == Grant.VENDOR:
            items = service.get_vendor_order_items(order_id, principal.id)
        else:
            items = service.get_order_items(order_id)
        return OrderDetailResponse(success=True, order=_with_items(order, items))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"查询商家订单详情失败: {str(e)}")
        raise InternalError(str(e))


@router.put(
    "/vendor/{order_id}/status",
    response_model=OrderUpdateResponse,
    summary="商家更新订单状态",
    description="仅限订单中包含自己商品的有效商家；更新后通知下单用户。",
)
async def vendor_update_order_status(
    order_id: int = OrderIdPath,
    request: VendorUpdateStatusRequest = Body(...),
    principal: Optional[Principal] = PrincipalDep,
    service: OrderService = OrderServiceDep,
):
    try:
        _, grant = service.authorize(principal, order_id, OrderScope.VENDOR)
        updated_by = "vendor" if grant == Grant.VENDOR else "admin"
        order = service.change_status(order_id, request.status, request.vendor_notes, updated_by)
        return OrderUpdateResponse(
            success=True,
            message="订单状态更新成功",
            order=OrderResponse.model_validate(order),
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"商家更新订单状态失败: {str(e)}")
        raise InternalError(str(e))


@router.get(
    "/{order_id}",
    response_model=OrderDetailResponse,
    summary="查询订单详情",
)
async def get_order(
    order_id: int = OrderIdPath,
    principal: Optional[Principal] = PrincipalDep,
    service: OrderService = OrderServiceDep,
):
    try:
        order, _ = service.authorize(principal, order_id, OrderScope.CUSTOMER)
        items = service.get_order_items(order_id)
        return OrderDetailResponse(success=True, order=_with_items(order, items))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"查询订单失败: {str(e)}")
        raise InternalError(str(e))


@router.put(
    "/{order_id}/status",
    response_model=OrderUpdateResponse,
    summary="更新订单状态（管理员）",
    description="""按状态机校验后更新订单状态，并通知下单用户。

    **状态流转：**
    pending → confirmed → processing → shipped → delivered，
    pending / processing 可取消；delivered、cancelled 为终态。
    重复设置当前状态是幂等的。
    """,
)
async def update_order_status(
    order_id: int = OrderIdPath,
    request: UpdateStatusRequest = Body(...),
    principal: Optional[Principal] = PrincipalDep,
    service: OrderService = OrderServiceDep,
):
    try:
        access_policy.require_admin(principal)
        order = service.change_status(order_id, request.status, request.admin_notes, "admin")
        return OrderUpdateResponse(
            success=True,
            message="订单状态更新成功",
            order=OrderResponse.model_validate(order),
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"更新订单状态失败: {str(e)}")
        raise InternalError(str(e))


@router.put(
    "/{order_id}/cancel",
    response_model=OrderUpdateResponse,
    summary="取消订单",
    description="下单用户或管理员可取消 pending / processing 状态的订单。",
)
async def cancel_order(
    order_id: int = OrderIdPath,
    request: Optional[CancelOrderRequest] = Body(None),
    principal: Optional[Principal] = PrincipalDep,
    service: OrderService = OrderServiceDep,
):
    try:
        service.authorize(principal, order_id, OrderScope.CUSTOMER)
        reason = request.reason if request else None
        order = service.cancel(order_id, principal.role, reason)
        return OrderUpdateResponse(
            success=True,
            message="订单已取消",
            order=OrderResponse.model_validate(order),
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"取消订单失败: {str(e)}")
        raise InternalError(str(e))
