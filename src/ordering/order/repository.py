"""Repository for the Order aggregate: customer and admin listings."""

from dataclasses import dataclass

from ordering.domain import ordering
from ordering.order.order import Order


@dataclass(frozen=True)
class OrderPage:
    orders: list
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        if self.total == 0:
            return 1
        return (self.total + self.limit - 1) // self.limit


@ordering.repository(part_of=Order)
class OrderRepository:
    """Listing queries on top of the standard CRUD operations.

    Newest orders first. ``page`` is 1-based.
    """

    def _page(self, query, page: int, limit: int) -> OrderPage:
        page = max(1, page)
        limit = max(1, limit)
        result = query.order_by("-created_at").offset((page - 1) * limit).limit(limit).all()
        return OrderPage(orders=result.items, total=result.total, page=page, limit=limit)

    def for_customer(self, customer_id: str, page: int = 1, limit: int = 20) -> OrderPage:
        return self._page(self._dao.query.filter(customer_id=customer_id), page, limit)

    def for_admin(self, status: str | None = None, page: int = 1, limit: int = 20) -> OrderPage:
        query = self._dao.query
        if status:
            query = query.filter(status=status)
        return self._page(query, page, limit)
