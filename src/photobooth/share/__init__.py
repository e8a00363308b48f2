"""Mobile share pages."""

from .page import render_mobile_share_page
from .store import ShareStore

__all__ = ["ShareStore", "render_mobile_share_page"]
