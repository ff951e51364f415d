import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from warehousing.api import (
    inventory_router,
    register_error_handlers,
    transaction_router,
    transfer_router,
    warehouse_router,
)
from warehousing.services import get_services


@pytest.fixture()
def client(services):
    app = FastAPI()
    app.include_router(inventory_router)
    app.include_router(transaction_router)
    app.include_router(transfer_router)
    app.include_router(warehouse_router)
    register_error_handlers(app)
    app.dependency_overrides[get_services] = lambda: services
    return TestClient(app, raise_server_exceptions=False)
