from datetime import datetime, timedelta, timezone

from storefront.domain.models import OrderStats

RECENT_WINDOW = timedelta(days=7)


class GetOrderStatsUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self) -> OrderStats:
        async with self._uow() as uow:
            return await uow.orders.stats(recent_since=datetime.now(timezone.utc) - RECENT_WINDOW)
