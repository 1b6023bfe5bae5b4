import enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    TIMESTAMP,
    Enum,
    func,
)
from app.db.base import Base


# 1️ 用户角色枚举

class UserRole(str, enum.Enum):
    CUSTOMER = "customer"
    VENDOR = "vendor"
    ADMIN = "admin"


# 2️ 用户表（由账户服务维护，本服务只读引用）

class User(Base):
    __tablename__ = "users"

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    name = Column(
        String(255),
        nullable=False,
        comment="用户名称",
    )

    email = Column(
        String(255),
        nullable=False,
        unique=True,
        comment="邮箱",
    )

    role = Column(
        Enum(
            UserRole,
            name="user_role_type",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=UserRole.CUSTOMER,
        comment="角色：customer / vendor / admin",
    )

    # 以下两个标志只对 vendor 角色有意义
    is_active = Column(
        Boolean,
        nullable=False,
        default=True,
        comment="商家账户是否启用",
    )

    can_add_products = Column(
        Boolean,
        nullable=False,
        default=False,
        comment="商家是否具备商品管理权限",
    )

    created_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
