"""
Authentication module initialization.
"""
from networth.auth.dependencies import get_current_user_id

__all__ = ["get_current_user_id"]
