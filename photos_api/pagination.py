"""
Sort and paging options for the public photo listing.
"""

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

from photos_api.models import Photo, PhotoPage

ASC = "asc"
DESC = "desc"


def _positive_int(value: Union[str, int, None]) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


@dataclass(frozen=True)
class QueryOptions:
    """
    Normalized listing options.

    Attributes:
        sort_by: ``"asc"`` (oldest first) or ``"desc"`` (newest first)
        limit: Page size
        page: 1-based page number
    """
    sort_by: str = DESC
    limit: int = 10
    page: int = 1

    @classmethod
    def from_request(
        cls,
        sort_by: Optional[str] = None,
        limit: Union[str, int, None] = None,
        page: Union[str, int, None] = None,
        default_limit: int = 10,
        max_limit: int = 100,
    ) -> "QueryOptions":
        """
        Map caller-supplied query parameters to options.

        ``"oldest"`` sorts ascending; any other value, or none, sorts
        descending. Missing or non-positive ``limit``/``page`` fall back to
        the defaults.
        """
        size = _positive_int(limit) or default_limit
        return cls(
            sort_by=ASC if sort_by == "oldest" else DESC,
            limit=min(size, max_limit),
            page=_positive_int(page) or 1,
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def sort_key(photo: Photo):
    # Identity breaks ties between records created in the same microsecond
    return (photo.created_at, photo.id)


def build_page(results: List[Photo], total: int, options: QueryOptions) -> PhotoPage:
    return PhotoPage(
        results=results,
        page=options.page,
        limit=options.limit,
        total_pages=math.ceil(total / options.limit),
        total_results=total,
    )


def paginate(photos: Iterable[Photo], options: QueryOptions) -> PhotoPage:
    """Order photos by creation time and cut out the requested page."""
    ordered = sorted(photos, key=sort_key, reverse=options.sort_by == DESC)
    return build_page(ordered[options.offset:options.offset + options.limit], len(ordered), options)
