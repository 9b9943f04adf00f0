# andun/business_logic/controllers/__init__.py

from .session_controller import SessionController

__all__ = [
    "SessionController"
]
