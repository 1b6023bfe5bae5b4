from pydantic import BaseModel, Field
from typing import Optional


class BaseResponse(BaseModel):
    """基础响应模型"""
    success: bool = Field(
        ...,
        description="请求是否成功"
    )
    message: Optional[str] = Field(
        None,
        description="响应消息"
    )


class ErrorResponse(BaseResponse):
    """错误响应：error 为机器可读的错误类型"""
    error: str = Field(
        ...,
        description="错误类型，如 insufficient_stock / illegal_transition"
    )
