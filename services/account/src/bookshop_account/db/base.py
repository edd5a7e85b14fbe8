"""数据库基础模型导出。

`db_auto_create` 开启时由应用启动流程按 Base.metadata 建表。
"""

from bookshop_account.models import Account, AccountRoleMembership, AccountToken  # noqa: F401
from bookshop_account.models.base import Base

__all__ = ["Base"]
