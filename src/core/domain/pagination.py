"""Pagination cursors for listing endpoints.

Two flavours exist: offset based (`start`/`count`) and page based
(`page`/`page_size`). A page is the last one when the server returned fewer
items than requested, zero included. Cursors do no I/O: callers build the
request from the params and feed back how many items came back.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class PaginationCursor:
    start: int = 0
    count: int = 0
    page: int = 0
    page_size: int = 0

    @classmethod
    def offset(cls, page_size: int) -> "PaginationCursor":
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        return cls(start=0, count=page_size)

    @classmethod
    def paged(cls, page_size: int) -> "PaginationCursor":
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        return cls(page=0, page_size=page_size)

    def next_offset_page(self, items_received: int) -> bool:
        """Advance `start`; return True if another page may exist."""

        if items_received == 0 or items_received < self.count:
            return False
        self.start += items_received
        return True

    def next_page(self, items_received: int) -> bool:
        """Advance `page`; return True if another page may exist."""

        if items_received == 0 or items_received < self.page_size:
            return False
        self.page += 1
        return True

    def offset_params(self) -> dict[str, int]:
        return {"start": self.start, "count": self.count}

    def page_params(self) -> dict[str, int]:
        return {"page": self.page, "page_size": self.page_size}
