import pytest

from nomadnow.domain.directory.windowing import InfiniteWindow, PageWindow, make_window, paginate


ITEMS = list(range(20))


def test_paginate_pages_concatenate_to_input():
	pages = [paginate(ITEMS, n, 9) for n in range(1, 4)]
	assert [len(p) for p in pages] == [9, 9, 2]
	assert sum(pages, []) == ITEMS
	assert paginate(ITEMS, 4, 9) == []
	assert paginate(ITEMS, 0, 9) == []


def test_page_window_navigation_and_rejection():
	window = PageWindow(9)
	window.reset(ITEMS)

	assert window.total_pages == 3
	assert window.current_page == 1
	assert window.items == ITEMS[:9]
	assert window.has_more is True

	assert window.page(3) is True
	assert window.items == ITEMS[18:]
	assert window.has_more is False

	assert window.page(4) is False
	assert window.page(0) is False
	assert window.current_page == 3


def test_page_window_resets_to_first_page():
	window = PageWindow(9)
	window.reset(ITEMS)
	window.page(2)
	window.reset(ITEMS[:5])
	assert window.current_page == 1
	assert window.total_pages == 1
	assert window.items == ITEMS[:5]


def test_page_window_empty_list():
	window = PageWindow(9)
	window.reset([])
	meta = window.meta()
	assert (meta.current_page, meta.total_pages, meta.has_more, meta.total) == (1, 0, False, 0)
	assert window.items == []
	assert window.page(1) is False


def test_infinite_window_grows_monotonically_and_caps():
	window = InfiniteWindow(9)
	window.reset(ITEMS)
	assert window.displayed == 9
	assert window.load_more() is True
	assert window.displayed == 18
	assert window.load_more() is True
	assert window.displayed == 20
	assert window.has_more is False
	assert window.load_more() is False
	assert window.items == ITEMS


def test_infinite_window_reset_returns_to_initial_size():
	window = InfiniteWindow(9)
	window.reset(ITEMS)
	window.load_more()
	window.reset(ITEMS)
	assert window.displayed == 9
	assert window.current_page == 1


def test_make_window_modes():
	assert isinstance(make_window("page", 9), PageWindow)
	assert isinstance(make_window("infinite", 9), InfiniteWindow)
	with pytest.raises(ValueError):
		make_window("scroll", 9)
	with pytest.raises(ValueError):
		PageWindow(0)
