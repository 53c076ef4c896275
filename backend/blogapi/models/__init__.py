from blogapi.models.access_token import AccessToken
from blogapi.models.user import User

__all__ = [
    "AccessToken",
    "User",
]
