"""订单状态机

只负责判断状态变更本身是否合法；谁可以发起变更由 AccessPolicy 决定，
状态写入由 OrderService.update_status 完成。
"""

from typing import Dict, FrozenSet, Union

from app.core.exceptions import IllegalTransition
from app.models.order import OrderStatus

# 可取消状态
CANCELLABLE_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.PENDING,
    OrderStatus.PROCESSING,
})

# 只允许向前流转（可跳过中间状态）；取消只能从可取消状态发起；delivered、cancelled 为终态
ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.CONFIRMED,
        OrderStatus.PROCESSING,
        OrderStatus.SHIPPED,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.CONFIRMED: frozenset({
        OrderStatus.PROCESSING,
        OrderStatus.SHIPPED,
        OrderStatus.DELIVERED,
    }),
    OrderStatus.PROCESSING: frozenset({
        OrderStatus.SHIPPED,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.SHIPPED: frozenset({
        OrderStatus.DELIVERED,
    }),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def _as_status(status: Union[OrderStatus, str]) -> OrderStatus:
    return status if isinstance(status, OrderStatus) else OrderStatus(status)


def can_cancel(status: Union[OrderStatus, str]) -> bool:
    return _as_status(status) in CANCELLABLE_STATUSES


def can_transition(current: Union[OrderStatus, str], target: Union[OrderStatus, str]) -> bool:
    """判断状态变更是否合法，重复设置当前状态视为合法（幂等）"""
    current, target = _as_status(current), _as_status(target)
    if current == target:
        return True
    return target in ALLOWED_TRANSITIONS[current]


def ensure_cancellable(status: Union[OrderStatus, str]) -> None:
    if not can_cancel(status):
        raise IllegalTransition(_as_status(status))


def ensure_transition(current: Union[OrderStatus, str], target: Union[OrderStatus, str]) -> None:
    if not can_transition(current, target):
        raise IllegalTransition(_as_status(current), _as_status(target))
