"""
Query parameters for listing stored deals.

Value bounds accept the public API names (minValue, maxValue). Out of
range paging and unknown sort keys fall back to defaults instead of failing.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100
DEFAULT_SORT = 'announced_date'
SORTABLE_COLUMNS = frozenset({
    'announced_date', 'value_usd', 'confidence_score', 'title', 'created_at', 'updated_at',
})


class DealListQuery(BaseModel):
    """Filters, ordering and paging for GET /deals."""

    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    status: str | None = None
    sector: str | None = None
    geography: str | None = None
    min_value: int | None = Field(default=None, alias='minValue')
    max_value: int | None = Field(default=None, alias='maxValue')
    verification: str | None = None
    sort: str = DEFAULT_SORT
    order: Literal['asc', 'desc'] = 'desc'
    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0

    @field_validator('sort')
    @classmethod
    def _known_sort(cls, v: str) -> str:
        return v if v in SORTABLE_COLUMNS else DEFAULT_SORT

    @field_validator('order', mode='before')
    @classmethod
    def _order(cls, v: Any) -> str:
        return 'asc' if isinstance(v, str) and v.lower() == 'asc' else 'desc'

    @field_validator('limit')
    @classmethod
    def _cap_limit(cls, v: int) -> int:
        if v <= 0:
            return DEFAULT_PAGE_SIZE
        return min(v, MAX_PAGE_SIZE)

    @field_validator('offset')
    @classmethod
    def _non_negative_offset(cls, v: int) -> int:
        return max(v, 0)
