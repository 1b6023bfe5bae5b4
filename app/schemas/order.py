"""订单 API 的 Pydantic 模型"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.models.order import OrderStatus, PaymentMethod
from app.schemas.base import BaseResponse


# ==================== 请求模型 ====================

class OrderItemCreate(BaseModel):
    """订单明细（价格为下单时价格）"""
    product_id: int = Field(..., gt=0, description="商品ID", examples=[1])
    quantity: int = Field(..., gt=0, description="购买数量", examples=[2])
    price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2, description="下单单价", examples=["10.00"])


class ShippingAddress(BaseModel):
    name: str = Field(..., min_length=1)
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
    phone: Optional[str] = None


class CreateOrderRequest(BaseModel):
    items: List[OrderItemCreate] = Field(..., min_length=1)
    shipping_address: ShippingAddress
    payment_method: PaymentMethod
    notes: Optional[str] = None


class UpdateStatusRequest(BaseModel):
    """管理员更新订单状态"""
    status: OrderStatus
    admin_notes: Optional[str] = None


class VendorUpdateStatusRequest(BaseModel):
    """商家更新订单状态"""
    status: OrderStatus
    vendor_notes: Optional[str] = None


class CancelOrderRequest(BaseModel):
    reason: Optional[str] = None


# ==================== 响应模型 ====================

class OrderItemResponse(BaseModel):
    id: int
    order_id: int
    product_id: int
    product_name: Optional[str] = None
    quantity: int
    price: Decimal

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: int
    customer_id: int
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    total_amount: Decimal
    status: OrderStatus
    shipping_address: Dict[str, Any]
    payment_method: PaymentMethod
    notes: Optional[str] = None
    admin_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrderWithItemsResponse(OrderResponse):
    items: List[OrderItemResponse] = []


class PaginationInfo(BaseModel):
    total: int
    limit: int
    offset: int
    pages: int


class CreateOrderResponse(BaseResponse):
    order: OrderWithItemsResponse
    vendors_notified: int = Field(0, ge=0, description="收到通知的商家数量")


class OrderDetailResponse(BaseResponse):
    order: OrderWithItemsResponse


class OrderUpdateResponse(BaseResponse):
    order: OrderResponse


class OrderListResponse(BaseResponse):
    orders: List[OrderResponse]
    count: int
    pagination: Optional[PaginationInfo] = None


class VendorOrderListResponse(BaseResponse):
    orders: List[OrderWithItemsResponse] = Field(..., description="订单列表，明细只包含该商家的商品")
    count: int


class AnalyticsPeriod(BaseModel):
    start_date: datetime
    end_date: datetime


class OrderAnalytics(BaseModel):
    total_orders: int
    total_revenue: Decimal
    average_order_value: Decimal
    status_counts: Dict[str, int]
    period: AnalyticsPeriod


class AnalyticsResponse(BaseResponse):
    analytics: OrderAnalytics
