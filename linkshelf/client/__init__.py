from linkshelf.client.api import LinksApi
from linkshelf.client.session import (
    TAB_FAVORITES,
    TAB_READ,
    TAB_UNREAD,
    Session,
    SessionState,
    apply_tab_filter,
)

__all__ = [
    "LinksApi",
    "Session",
    "SessionState",
    "TAB_FAVORITES",
    "TAB_READ",
    "TAB_UNREAD",
    "apply_tab_filter",
]
