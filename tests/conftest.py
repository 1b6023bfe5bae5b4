"""测试配置和 fixtures"""
from decimal import Decimal

import pytest
from unittest.mock import Mock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from redis import Redis

from app.db.base import Base
import app.models  # noqa: F401  注册全部模型
from app.models.user import User, UserRole
from app.models.product import Product
from app.services.access_policy import Principal


@pytest.fixture
def mock_db_session():
    """创建内存 SQLite 数据库会话（完整表结构）"""
    # StaticPool 让 TestClient 的工作线程共用同一个内存数据库连接
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    db = SessionLocal()

    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def users(mock_db_session):
    """示例用户：下单用户、两个商家、管理员、停用商家、无权限商家"""
    rows = {
        "customer": User(name="张三", email="customer@example.com", role=UserRole.CUSTOMER),
        "other_customer": User(name="李四", email="other@example.com", role=UserRole.CUSTOMER),
        "vendor1": User(name="商家一", email="vendor1@example.com", role=UserRole.VENDOR,
                        is_active=True, can_add_products=True),
        "vendor2": User(name="商家二", email="vendor2@example.com", role=UserRole.VENDOR,
                        is_active=True, can_add_products=True),
        "admin": User(name="管理员", email="admin@example.com", role=UserRole.ADMIN,
                      is_active=True, can_add_products=True),
        "disabled_vendor": User(name="停用商家", email="disabled@example.com", role=UserRole.VENDOR,
                                is_active=False, can_add_products=True),
        "no_permission_vendor": User(name="无权限商家", email="noperm@example.com", role=UserRole.VENDOR,
                                     is_active=True, can_add_products=False),
    }
    mock_db_session.add_all(rows.values())
    mock_db_session.commit()
    return rows


@pytest.fixture
def products(mock_db_session, users):
    """示例商品：P1、P2 分属两个商家，P3 为管理员自己上架"""
    rows = {
        "p1": Product(sku="SKU-P1", name="机械键盘", vendor_id=users["vendor1"].id,
                      price=Decimal("10.00"), stock_quantity=10),
        "p2": Product(sku="SKU-P2", name="鼠标垫", vendor_id=users["vendor2"].id,
                      price=Decimal("5.00"), stock_quantity=5),
        "p3": Product(sku="SKU-P3", name="显示器支架", vendor_id=users["admin"].id,
                      price=Decimal("20.00"), stock_quantity=3),
    }
    mock_db_session.add_all(rows.values())
    mock_db_session.commit()
    return rows


@pytest.fixture
def principals(users):
    """把示例用户转换为 Principal"""
    return {key: Principal.from_user(user) for key, user in users.items()}


@pytest.fixture
def mock_redis():
    """创建模拟 Redis 客户端"""
    redis_mock = Mock(spec=Redis)
    redis_mock.publish.return_value = 1
    redis_mock.ping.return_value = True
    return redis_mock


@pytest.fixture
def sample_shipping_address():
    """示例收货地址"""
    return {
        "name": "张三",
        "street": "人民路 1 号",
        "city": "上海",
        "state": "上海",
        "zip_code": "200000",
        "country": "CN",
        "phone": "13800000000",
    }


@pytest.fixture
def sample_items(products):
    """示例订单明细：P1×2@10.00 + P2×1@5.00"""
    return [
        {"product_id": products["p1"].id, "quantity": 2, "price": "10.00"},
        {"product_id": products["p2"].id, "quantity": 1, "price": "5.00"},
    ]
