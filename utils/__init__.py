"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc, to_local, format_display_date
from utils.user_context import (
    get_current_user_id,
    get_current_shop_id,
    set_current_user,
    clear_current_user,
    user_context,
)
