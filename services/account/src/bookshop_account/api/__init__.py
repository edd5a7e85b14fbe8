"""路由模块导出集合。"""

from . import account, admin, health

__all__ = [
    "account",
    "admin",
    "health",
]
