"""依赖注入单元测试"""
import pytest
from unittest.mock import Mock, patch
from sqlalchemy.orm import Session
from starlette.requests import Request

from app.core.dependencies import (
    get_current_principal,
    get_db,
    get_notification_fanout,
    get_order_service,
    get_redis,
)
from app.core.config import settings
from app.core.exceptions import InvalidInput
from app.core.redis import redis_client
from app.models.user import UserRole
from app.services.notification_service import (
    EmailNotifier,
    NotificationFanout,
    NotificationStore,
    RealtimePublisher,
)
from app.services.order_service import OrderService


def make_request(headers=None):
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw})


class TestDependencies:
    """依赖注入测试类"""

    def test_get_db(self):
        """测试数据库会话依赖"""
        with patch('app.core.dependencies.SessionLocal') as mock_session_local:
            db_mock = Mock(spec=Session)
            mock_session_local.return_value = db_mock

            gen = get_db()
            db = next(gen)

            assert db == db_mock
            mock_session_local.assert_called_once()

            # 测试清理
            try:
                gen.throw(GeneratorExit)
            except GeneratorExit:
                pass
            db_mock.close.assert_called_once()

    def test_get_redis(self):
        """测试 Redis 依赖直接返回客户端，不在每个请求上 ping"""
        with patch('app.core.dependencies.redis_client') as mock_redis_client:
            redis_conn = get_redis()

            assert redis_conn == mock_redis_client
            mock_redis_client.ping.assert_not_called()

    def test_redis_client_timeouts(self):
        """测试 Redis 客户端设置了连接和读写超时"""
        kwargs = redis_client.connection_pool.connection_kwargs

        assert kwargs["socket_connect_timeout"] == settings.REDIS_SOCKET_TIMEOUT
        assert kwargs["socket_timeout"] == settings.REDIS_SOCKET_TIMEOUT

    def test_get_notification_fanout(self, mock_redis):
        """测试通知分发器装配"""
        db_mock = Mock(spec=Session)

        fanout = get_notification_fanout(db_mock, mock_redis)

        assert isinstance(fanout, NotificationFanout)
        assert fanout.db is db_mock
        assert [type(c) for c in fanout.channels] == [NotificationStore, RealtimePublisher]
        assert fanout.channels[1].redis is mock_redis
        assert isinstance(fanout.email, EmailNotifier)

    def test_get_order_service(self):
        """测试订单服务依赖"""
        db_mock = Mock(spec=Session)
        fanout = Mock()

        service = get_order_service(db_mock, fanout)

        assert isinstance(service, OrderService)
        assert service.db is db_mock
        assert service.fanout is fanout
        assert service.ledger.db is db_mock


class TestCurrentPrincipal:
    """当前用户解析测试类"""

    def test_principal_from_header(self, mock_db_session, users):
        """测试从请求头解析用户"""
        vendor = users["vendor1"]
        request = make_request({"X-User-Id": str(vendor.id)})

        principal = get_current_principal(request, mock_db_session)

        assert principal.id == vendor.id
        assert principal.role == UserRole.VENDOR
        assert principal.can_add_products is True

    def test_missing_header(self, mock_db_session, users):
        """测试请求头缺失视为未登录"""
        assert get_current_principal(make_request(), mock_db_session) is None

    def test_unknown_user(self, mock_db_session, users):
        """测试用户不存在视为未登录"""
        request = make_request({"X-User-Id": "9999"})
        assert get_current_principal(request, mock_db_session) is None

    def test_invalid_header(self, mock_db_session, users):
        """测试非数字用户ID"""
        request = make_request({"X-User-Id": "abc"})

        with pytest.raises(InvalidInput) as exc_info:
            get_current_principal(request, mock_db_session)

        assert exc_info.value.status_code == 400
