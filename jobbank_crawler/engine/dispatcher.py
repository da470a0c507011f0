"""Fill the work queue with one job per page, then close it."""

from __future__ import annotations

from ..models import PageJob
from .channels import ClosableQueue


def apply_page_ceiling(total_pages: int, max_pages: int | None) -> int:
    """``None`` or a negative ceiling means every page."""

    if max_pages is None or max_pages < 0:
        return total_pages
    return min(max_pages, total_pages)


def dispatch_pages(run_id: str, total_pages: int) -> ClosableQueue[PageJob]:
    """Return a closed queue holding pages ``1..total_pages`` in order.

    The queue is sized to ``total_pages`` so dispatching never blocks.
    """

    work: ClosableQueue[PageJob] = ClosableQueue(capacity=max(total_pages, 1))
    for page in range(1, total_pages + 1):
        work.put(PageJob(page=page, run_id=run_id))
    work.close()
    return work


__all__ = ["apply_page_ceiling", "dispatch_pages"]
