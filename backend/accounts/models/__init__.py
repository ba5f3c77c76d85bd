from backend.accounts.models.account import Account
from backend.accounts.models.refresh_token import RefreshToken

__all__ = ["Account", "RefreshToken"]
