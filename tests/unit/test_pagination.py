"""Unit tests for list pagination"""

import pytest
from branch_expenses.utils.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, get_pagination


def test_offset_from_page():
    assert get_pagination(3, 20).offset == 40


@pytest.mark.parametrize(
    "page, page_size, expected",
    [
        (None, None, (1, DEFAULT_PAGE_SIZE)),
        (0, -5, (1, DEFAULT_PAGE_SIZE)),
        (2, 500, (2, MAX_PAGE_SIZE)),
    ],
)
def test_pagination_defaults_and_cap(page, page_size, expected):
    pagination = get_pagination(page, page_size)
    assert (pagination.page, pagination.page_size) == expected
