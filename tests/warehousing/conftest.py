import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def warehousing_bed():
    from warehousing.domain import warehousing

    bed = DomainFixture(warehousing)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(warehousing_bed):
    with warehousing_bed.domain_context():
        yield


@pytest.fixture()
def services():
    from warehousing.services import build_services

    return build_services()


@pytest.fixture()
def warehouse(services):
    """An active warehouse with two bin locations, A-01 and B-01."""
    from warehousing.shared.dispatch import dispatch
    from warehousing.warehouse.management import AddLocation, RegisterWarehouse

    warehouse_id = dispatch(RegisterWarehouse(code="WH-MAIN", name="Main Warehouse"))
    location_a = dispatch(AddLocation(warehouse_id=warehouse_id, code="A-01", zone="A"))
    location_b = dispatch(AddLocation(warehouse_id=warehouse_id, code="B-01", zone="B"))
    return {"id": warehouse_id, "location_a": location_a, "location_b": location_b}


@pytest.fixture()
def second_warehouse(services):
    from warehousing.shared.dispatch import dispatch
    from warehousing.warehouse.management import AddLocation, RegisterWarehouse

    warehouse_id = dispatch(RegisterWarehouse(code="WH-EAST", name="East Warehouse"))
    location = dispatch(AddLocation(warehouse_id=warehouse_id, code="E-01", zone="E"))
    return {"id": warehouse_id, "location": location}


@pytest.fixture()
def stocked_record(services, warehouse):
    """A record holding 10 units of SKU-001 at location A-01."""
    return services.inventory.create(
        warehouse_id=warehouse["id"],
        location_id=warehouse["location_a"],
        sku="SKU-001",
        product_name="Widget",
        initial_quantity=10,
        unit_cost=2.5,
        thresholds={"reorder_point": 3, "reorder_quantity": 20, "min_quantity": 1},
    )
