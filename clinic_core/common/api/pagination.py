from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Sequence

from django.conf import settings
from django.core.paginator import EmptyPage, Paginator
from rest_framework import serializers


def default_page_size() -> int:
    return int(getattr(settings, "BILLING_DEFAULT_PAGE_SIZE", 50))


def max_page_size() -> int:
    return int(getattr(settings, "BILLING_MAX_PAGE_SIZE", 100))


class PageParamsSerializer(serializers.Serializer):
    page = serializers.IntegerField(required=False, default=1, min_value=1)
    limit = serializers.IntegerField(required=False, min_value=1)


@dataclass(frozen=True)
class PageResult:
    """
    One page of a filtered set.
    `total` always reflects the whole filtered set, not the page length.
    """
    items: Sequence[Any]
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    def as_dict(self, serialize: Callable[[Sequence[Any]], Any] | None = None) -> dict[str, Any]:
        return {
            "items": serialize(self.items) if serialize else list(self.items),
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "total_pages": self.total_pages,
            "has_next": self.has_next,
            "has_prev": self.has_prev,
        }


def page_of(queryset, *, page=1, limit=None) -> PageResult:
    """
    Cut a queryset (or list) into a 1-indexed page:
      { items, page, limit, total, total_pages, has_next, has_prev }

    Pages past the end return no items rather than failing.
    """
    params = PageParamsSerializer(data={k: v for k, v in {"page": page, "limit": limit}.items() if v not in (None, "")})
    params.is_valid(raise_exception=True)
    page_n = params.validated_data["page"]
    limit_n = min(params.validated_data.get("limit") or default_page_size(), max_page_size())

    paginator = Paginator(queryset, limit_n)
    total_pages = paginator.num_pages if paginator.count else 0
    try:
        current = paginator.page(page_n)
    except EmptyPage:
        return PageResult(
            items=[],
            page=page_n,
            limit=limit_n,
            total=paginator.count,
            total_pages=total_pages,
            has_next=False,
            has_prev=page_n > 1,
        )

    return PageResult(
        items=list(current.object_list),
        page=page_n,
        limit=limit_n,
        total=paginator.count,
        total_pages=total_pages,
        has_next=current.has_next(),
        has_prev=current.has_previous(),
    )
