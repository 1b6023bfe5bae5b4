"""订单服务异常体系

所有业务异常继承自 HTTPException，路由层沿用 ``except HTTPException: raise``
的透传写法；``kind`` 为机器可读的错误类型，由 main.py 中的异常处理器输出。
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException


class OrderServiceError(HTTPException):
    """订单服务异常基类"""

    kind = "internal"
    status_code = 500
    default_message = "服务器内部错误"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.extra: Dict[str, Any] = extra
        super().__init__(status_code=self.status_code, detail=message or self.default_message)

    @property
    def message(self) -> str:
        return self.detail


class Unauthenticated(OrderServiceError):
    kind = "unauthenticated"
    status_code = 401
    default_message = "需要登录后访问"


class Forbidden(OrderServiceError):
    kind = "forbidden"
    status_code = 403
    default_message = "无权访问该资源"


class ForbiddenDisabledAccount(Forbidden):
    kind = "forbidden_disabled_account"
    default_message = "商家账户已被停用，请联系客服"


class ForbiddenNoPermission(Forbidden):
    kind = "forbidden_no_permission"
    default_message = "商家没有商品管理权限，请联系客服"


class InvalidInput(OrderServiceError):
    kind = "invalid_input"
    status_code = 400
    default_message = "请求参数错误"


class NotFound(OrderServiceError):
    kind = "not_found"
    status_code = 404
    default_message = "资源未找到"


class OrderNotFound(NotFound):
    def __init__(self, order_id: int):
        super().__init__(f"订单不存在: {order_id}", order_id=order_id)


class ProductNotFound(NotFound):
    def __init__(self, product_id: int):
        super().__init__(f"商品不存在: {product_id}", product_id=product_id)


class InsufficientStock(OrderServiceError):
    kind = "insufficient_stock"
    status_code = 400

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"库存不足: 商品 {product_id}", product_id=product_id)


class IllegalTransition(OrderServiceError):
    kind = "illegal_transition"
    status_code = 400

    def __init__(self, current_status: str, target_status: Optional[str] = None):
        current_status = getattr(current_status, "value", current_status)
        target_status = getattr(target_status, "value", target_status)
        self.current_status = current_status
        if target_status:
            message = f"订单当前状态为 {current_status}，不能变更为 {target_status}"
        else:
            message = f"订单当前状态为 {current_status}，不能执行该操作"
        super().__init__(message, current_status=current_status)


class InternalError(OrderServiceError):
    pass
