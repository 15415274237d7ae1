"""Page/offset arithmetic for list endpoints"""

from dataclasses import dataclass
from typing import Optional

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class Pagination:
    page: int
    page_size: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


def get_pagination(page: Optional[int] = None, page_size: Optional[int] = None) -> Pagination:
    """Normalize paging input; non-positive values fall back to defaults"""
    safe_page = page if page and page > 0 else 1
    safe_size = page_size if page_size and page_size > 0 else DEFAULT_PAGE_SIZE
    return Pagination(page=safe_page, page_size=min(safe_size, MAX_PAGE_SIZE))
