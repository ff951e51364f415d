"""Read every row a query matches, one page at a time."""

from warehousing.shared.settings import query_page_size


def fetch_all(query, order_by: str = "id") -> list:
    """Pages are ordered on the identifier so none is skipped or read twice."""
    page_size = query_page_size()
    query = query.order_by(order_by).limit(page_size)
    items = []
    offset = 0
    while True:
        page = query.offset(offset).all()
        items.extend(page.items)
        if not page.has_next or not page.items:
            return items
        offset += page_size
