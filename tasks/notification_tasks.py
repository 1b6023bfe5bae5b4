"""订单邮件通知的 Celery 任务

邮件发送失败只记录日志并返回失败结果，不向上抛出。
"""

import html
import logging
import smtplib
from email.message import EmailMessage
from typing import Any, Dict, List

from celery_app import app
from app.core.config import settings

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    "confirmed": "您的订单已确认，我们正在为您备货。",
    "processing": "您的订单正在处理中，很快就会发货。",
    "shipped": "您的订单已发货，正在配送途中。",
    "delivered": "您的订单已送达，祝您购物愉快！",
    "cancelled": "您的订单已取消，如有疑问请联系客服。",
}


def render_order_confirmation(customer_name: str, order: Dict[str, Any], items: List[Dict[str, Any]]):
    """渲染订单确认邮件，返回 (subject, body)，用户输入的文本会做 HTML 转义"""
    subject = f"订单确认 #{order['id']}"
    rows = "".join(
        f"<tr><td>{html.escape(str(item['product_name']))}</td>"
        f"<td style=\"text-align: center;\">{item['quantity']}</td>"
        f"<td style=\"text-align: right;\">{item['price']}</td></tr>"
        for item in items
    )
    body = (
        f"<h2>订单确认</h2>"
        f"<p>{html.escape(str(customer_name))}，您好：</p>"
        f"<p>感谢您的购买！订单 #{order['id']} 当前状态：{html.escape(str(order['status']))}</p>"
        f"<table><thead><tr><th>商品</th><th>数量</th><th>单价</th></tr></thead>"
        f"<tbody>{rows}</tbody>"
        f"<tfoot><tr><td colspan=\"2\">合计</td>"
        f"<td style=\"text-align: right;\">{order['total_amount']}</td></tr></tfoot></table>"
        f"<p>订单发货后我们会再次通知您。</p>"
    )
    return subject, body


def render_status_update(customer_name: str, order: Dict[str, Any], new_status: str):
    """渲染订单状态变更邮件，返回 (subject, body)"""
    subject = f"订单 #{order['id']} 状态更新"
    body = (
        f"<h2>订单状态更新</h2>"
        f"<p>{html.escape(str(customer_name))}，您好：</p>"
        f"<p>您的订单 #{order['id']} 状态已更新为：<strong>{html.escape(new_status)}</strong></p>"
        f"<p>{STATUS_MESSAGES.get(new_status, '您的订单状态已更新。')}</p>"
    )
    return subject, body


def send_email(to: str, subject: str, body: str) -> bool:
    """通过 SMTP 发送邮件，未配置 SMTP 时跳过"""
    if not settings.smtp_configured:
        logger.warning(f"邮件服务未配置，跳过发送: to={to}, subject={subject}")
        return False

    message = EmailMessage()
    message["From"] = settings.EMAIL_FROM
    message["To"] = to
    message["Subject"] = subject
    message.set_content("请使用支持 HTML 的邮件客户端查看。")
    message.add_alternative(body, subtype="html")

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as smtp:
        smtp.starttls()
        if settings.SMTP_USER:
            smtp.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
        smtp.send_message(message)
    logger.info(f"邮件发送成功: to={to}, subject={subject}")
    return True


@app.task(name='tasks.notification.send_order_confirmation_email')
def send_order_confirmation_email(customer_email: str, customer_name: str, order: dict, items: list):
    """发送订单确认邮件

    Args:
        order: {"id", "status", "total_amount", "created_at"}
        items: [{"product_id", "product_name", "quantity", "price"}, ...]
    """
    try:
        subject, body = render_order_confirmation(customer_name, order, items)
        sent = send_email(customer_email, subject, body)
        return {"status": "sent" if sent else "skipped", "order_id": order["id"]}
    except Exception as e:
        logger.error(f"订单确认邮件发送失败: order_id={order.get('id')}, error={str(e)}")
        return {"status": "failed", "order_id": order.get("id"), "error": str(e)}


@app.task(name='tasks.notification.send_order_status_email')
def send_order_status_email(customer_email: str, customer_name: str, order: dict, new_status: str):
    """发送订单状态变更邮件"""
    try:
        subject, body = render_status_update(customer_name, order, new_status)
        sent = send_email(customer_email, subject, body)
        return {"status": "sent" if sent else "skipped", "order_id": order["id"]}
    except Exception as e:
        logger.error(f"订单状态邮件发送失败: order_id={order.get('id')}, error={str(e)}")
        return {"status": "failed", "order_id": order.get("id"), "error": str(e)}


# 导出任务
__all__ = [
    'send_order_confirmation_email',
    'send_order_status_email',
]
