"""
Pagination helpers shared by service-level list operations.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.core.paginator import Paginator, EmptyPage

from apps.core.exceptions import ValidationError


@dataclass
class Page:
    """A page of results plus pagination metadata."""
    items: List[Any] = field(default_factory=list)
    page: int = 1
    page_size: int = 50
    total: int = 0
    total_pages: int = 0

    @property
    def pagination(self) -> Dict[str, int]:
        return {
            'page': self.page,
            'page_size': self.page_size,
            'total': self.total,
            'total_pages': self.total_pages,
        }

    def __iter__(self):
        return iter(self.items)

    def __len__(self):
        return len(self.items)


def paginate(queryset, page: int = 1, page_size: Optional[int] = None) -> Page:
    """
    Slice a queryset into a Page.

    Raises:
        ValidationError: If page or page_size is not a positive integer
    """
    default_size = getattr(settings, 'RBAC_DEFAULT_PAGE_SIZE', 50)
    max_size = getattr(settings, 'RBAC_MAX_PAGE_SIZE', 100)
    page_size = default_size if page_size is None else page_size

    if page < 1 or page_size < 1:
        raise ValidationError(
            'page and page_size must be positive integers',
            {'page': page, 'page_size': page_size}
        )
    page_size = min(page_size, max_size)

    paginator = Paginator(queryset, page_size)
    try:
        items = list(paginator.page(page).object_list)
    except EmptyPage:
        items = []

    return Page(
        items=items,
        page=page,
        page_size=page_size,
        total=paginator.count,
        total_pages=paginator.num_pages if paginator.count else 0,
    )

