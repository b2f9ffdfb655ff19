"""Search popularity: per-user search counts and region rankings."""

import logging
import re
from typing import List, Optional

from ..errors import ForbiddenError, NotFoundError, ValidationError
from ..models import SearchPopularity
from ..settings import settings


logger = logging.getLogger(__name__)


MAX_KEYWORD_LENGTH = 100
MAX_REGION_LENGTH = 50
SORT_OPTIONS = ("updatedAt", "count")

_WHITESPACE = re.compile(r"\s+")


def normalize(value: Optional[str]) -> str:
    """Trim and collapse whitespace runs to one space. Case is kept."""
    if value is None:
        return ""
    return _WHITESPACE.sub(" ", value).strip()


def _validated(field: str, value: Optional[str], max_length: int) -> str:
    normalized = normalize(value)
    if not normalized:
        raise ValidationError(f"{field} must not be empty.")
    if len(normalized) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters.")
    return normalized


class SearchService:

    def __init__(self, store):
        self.store = store

    async def record_search(self, user_id: int, keyword: str, region: str) -> SearchPopularity:
        """
        Count one search of `keyword` in `region` by `user_id`.

        The first search creates the record with count 1; every later search
        with the same normalized key increments it and refreshes updated_at.
        The store performs this as one atomic upsert.
        """
        keyword = _validated("keyword", keyword, MAX_KEYWORD_LENGTH)
        region = _validated("region", region, MAX_REGION_LENGTH)
        if not await self.store.user_exists(user_id):
            raise NotFoundError(f"User {user_id} does not exist.")

        record = await self.store.upsert_search(user_id, keyword, region)
        logger.debug("[searches] Recorded user_id=%s region=%s count=%d", user_id, region, record.count)
        return record

    async def top_n(self, region: str, n: int) -> List[SearchPopularity]:
        """Up to `n` records for `region` by count desc, then most recently updated."""
        if isinstance(n, bool) or not isinstance(n, int) or n < 1:
            raise ValidationError("n must be a positive integer.")
        region = normalize(region)
        if not region or len(region) > MAX_REGION_LENGTH:
            # No record can carry such a region
            return []
        return await self.store.top_searches(region, min(n, settings.popular_max_limit))

    async def list_user_searches(
        self, user_id: int, region: Optional[str] = None, sort: Optional[str] = None
    ) -> List[SearchPopularity]:
        sort = sort or "updatedAt"
        if sort not in SORT_OPTIONS:
            raise ValidationError(f"sort must be one of {', '.join(SORT_OPTIONS)}.")
        region = normalize(region) or None
        return await self.store.list_user_searches(user_id, region, sort)

    async def get_search(self, user_id: int, search_id: int) -> SearchPopularity:
        record = await self.store.get_search(search_id)
        if record is None:
            raise NotFoundError(f"Search record {search_id} does not exist.")
        if record.user_id != user_id:
            raise ForbiddenError("You cannot view another user's search history.")
        return record
