"""Warehousing bounded context: Stock Ledger and Transfer Workflow.

Tracks physical stock per (warehouse, location, SKU, batch), records every
quantity movement in an append-only transaction ledger, and orchestrates
multi-item transfers between locations and warehouses (all CQRS).
"""

import structlog
from protean.domain import Domain

warehousing = Domain(name="warehousing")

logger = structlog.get_logger(__name__)
