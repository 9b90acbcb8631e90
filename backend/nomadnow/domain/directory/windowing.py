"""Page-based and incremental ("load more") windows over a filtered list."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Generic, List, Literal, Sequence, TypeVar, Union

T = TypeVar("T")

PaginationMode = Literal["page", "infinite"]


@dataclass(frozen=True, slots=True)
class PaginationMeta:
	mode: PaginationMode
	page_size: int
	current_page: int
	total_pages: int
	has_more: bool
	total: int


def total_pages(total: int, page_size: int) -> int:
	if page_size <= 0:
		raise ValueError("page_size must be positive")
	return math.ceil(total / page_size)


def paginate(records: Sequence[T], page: int, page_size: int) -> List[T]:
	"""Return the 1-based ``page`` of ``records``; out-of-range pages are empty."""
	if page_size <= 0:
		raise ValueError("page_size must be positive")
	if page < 1:
		return []
	start = (page - 1) * page_size
	return list(records[start : start + page_size])


class PageWindow(Generic[T]):
	"""Classic numbered pages. Invalid page requests keep the current page."""

	mode: PaginationMode = "page"

	def __init__(self, page_size: int) -> None:
		if page_size <= 0:
			raise ValueError("page_size must be positive")
		self.page_size = page_size
		self._records: List[T] = []
		self._page = 1

	def reset(self, records: Sequence[T]) -> None:
		self._records = list(records)
		self._page = 1

	@property
	def current_page(self) -> int:
		return self._page

	@property
	def total(self) -> int:
		return len(self._records)

	@property
	def total_pages(self) -> int:
		return total_pages(len(self._records), self.page_size)

	@property
	def has_more(self) -> bool:
		return self._page < self.total_pages

	@property
	def items(self) -> List[T]:
		return paginate(self._records, self._page, self.page_size)

	def page(self, number: int) -> bool:
		if number < 1 or number > self.total_pages:
			return False
		self._page = number
		return True

	def load_more(self) -> bool:
		return self.page(self._page + 1)

	def meta(self) -> PaginationMeta:
		return PaginationMeta(
			mode=self.mode,
			page_size=self.page_size,
			current_page=self._page,
			total_pages=self.total_pages,
			has_more=self.has_more,
			total=self.total,
		)


class InfiniteWindow(Generic[T]):
	"""Growing prefix of the list, extended one page at a time."""

	mode: PaginationMode = "infinite"

	def __init__(self, page_size: int) -> None:
		if page_size <= 0:
			raise ValueError("page_size must be positive")
		self.page_size = page_size
		self._records: List[T] = []
		self._displayed = 0

	def reset(self, records: Sequence[T]) -> None:
		self._records = list(records)
		self._displayed = min(self.page_size, len(self._records))

	@property
	def displayed(self) -> int:
		return self._displayed

	@property
	def current_page(self) -> int:
		return max(1, math.ceil(self._displayed / self.page_size))

	@property
	def total(self) -> int:
		return len(self._records)

	@property
	def total_pages(self) -> int:
		return total_pages(len(self._records), self.page_size)

	@property
	def has_more(self) -> bool:
		return self._displayed < len(self._records)

	@property
	def items(self) -> List[T]:
		return self._records[: self._displayed]

	def load_more(self) -> bool:
		if not self.has_more:
			return False
		self._displayed = min(self._displayed + self.page_size, len(self._records))
		return True

	def page(self, number: int) -> bool:
		"""Expand the window until ``number`` pages are shown; never shrinks."""
		if number < 1 or number > self.total_pages:
			return False
		self._displayed = max(self._displayed, min(number * self.page_size, len(self._records)))
		return True

	def meta(self) -> PaginationMeta:
		return PaginationMeta(
			mode=self.mode,
			page_size=self.page_size,
			current_page=self.current_page,
			total_pages=self.total_pages,
			has_more=self.has_more,
			total=self.total,
		)


Window = Union[PageWindow, InfiniteWindow]


def make_window(mode: str, page_size: int) -> Window:
	if mode == "page":
		return PageWindow(page_size)
	if mode == "infinite":
		return InfiniteWindow(page_size)
	raise ValueError(f"unknown pagination mode: {mode}")


__all__ = [
	"InfiniteWindow",
	"PageWindow",
	"PaginationMeta",
	"PaginationMode",
	"Window",
	"make_window",
	"paginate",
	"total_pages",
]
