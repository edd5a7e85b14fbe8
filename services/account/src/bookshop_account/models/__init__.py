"""ORM 模型导出集合。"""

from bookshop_account.models.account import Account, AccountRoleMembership, AccountToken

__all__ = [
    "Account",
    "AccountRoleMembership",
    "AccountToken",
]
