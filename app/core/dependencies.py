"""依赖注入配置模块"""

import logging
from typing import Optional

from fastapi import Depends, Request

# 数据库会话依赖
from app.db.session import SessionLocal
from sqlalchemy.orm import Session

# Redis 依赖
from app.core.redis import redis_client
from app.core.config import settings
from app.core.exceptions import InvalidInput

from app.models.user import User
from app.services.access_policy import Principal
from app.services.notification_service import (
    EmailNotifier,
    NotificationFanout,
    NotificationStore,
    RealtimePublisher,
)
from app.services.order_service import OrderService

logger = logging.getLogger(__name__)


def get_redis():
    """获取同步 Redis 客户端（推送失败由 RealtimePublisher 所在的分发器隔离）"""
    return redis_client

def get_db() -> Session:
    """获取数据库会话"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_notification_fanout(
    db: Session = Depends(get_db),
    redis = Depends(get_redis),
) -> NotificationFanout:
    """获取通知分发器：站内通知 + Redis 实时推送 + 邮件"""
    return NotificationFanout(
        db=db,
        channels=[NotificationStore(db), RealtimePublisher(redis)],
        email=EmailNotifier(),
    )


def get_order_service(
    db: Session = Depends(get_db),
    fanout: NotificationFanout = Depends(get_notification_fanout),
) -> OrderService:
    """获取订单服务实例（依赖注入）"""
    return OrderService(db=db, fanout=fanout)


def get_current_principal(
    request: Request,
    db: Session = Depends(get_db),
) -> Optional[Principal]:
    """解析当前用户

    令牌校验由上游认证网关完成，网关通过请求头转发用户ID；
    请求头缺失或用户不存在时返回 None（未登录）。
    """
    raw_user_id = request.headers.get(settings.PRINCIPAL_HEADER)
    if not raw_user_id:
        return None
    try:
        user_id = int(raw_user_id)
    except ValueError:
        raise InvalidInput(f"无效的用户ID: {raw_user_id}")

    user = db.get(User, user_id)
    if user is None:
        logger.warning(f"请求头中的用户不存在: user_id={user_id}")
        return None
    return Principal.from_user(user)


# 常用的依赖注入别名
OrderServiceDep = Depends(get_order_service)
PrincipalDep = Depends(get_current_principal)
