"""Celery 配置文件"""

import os
from celery import Celery

# 创建 Celery 应用实例
app = Celery('order_worker', include=['tasks.notification_tasks'])

# 从环境变量获取 Redis 配置
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = os.getenv("REDIS_PORT", "6379")

# 配置 Redis 作为 broker 和 backend
app.conf.broker_url = f"redis://{REDIS_HOST}:{REDIS_PORT}/1"
app.conf.result_backend = f"redis://{REDIS_HOST}:{REDIS_PORT}/2"

# 任务序列化配置
app.conf.task_serializer = 'json'
app.conf.result_serializer = 'json'
app.conf.accept_content = ['json']

# 时区配置
app.conf.timezone = 'Asia/Shanghai'
app.conf.enable_utc = True

# 邮件任务走独立队列，失败只记录日志，不重试
app.conf.task_routes = {
    'tasks.notification.*': {'queue': 'notification'},
}

# Worker 配置
app.conf.worker_prefetch_multiplier = 1
app.conf.task_acks_late = True

# SMTP 连接超时由 send_email 控制，这里限制单个任务的总耗时
app.conf.task_soft_time_limit = 30
app.conf.task_time_limit = 60

# 导出应用实例
__all__ = ['app']
