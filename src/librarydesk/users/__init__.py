"""User accounts: registration, activation and loan caps."""

from .manager import UserManager
from .schemas import UserCreate, UserResponse, UserUpdate

__all__ = ["UserManager", "UserCreate", "UserResponse", "UserUpdate"]
