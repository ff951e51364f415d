"""Shared BDD fixtures and step definitions for the Warehousing domain."""

import pytest
from pytest_bdd import given, parsers, then
from warehousing.shared.errors import error_kind


@pytest.fixture()
def error():
    """Container for the exception a When step was rejected with."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("a warehouse with two bin locations")
def _(warehouse):
    assert warehouse["location_a"] and warehouse["location_b"]


@given(
    parsers.cfparse("a record holding {quantity:d} units with a reorder point of {reorder_point:d}"),
    target_fixture="record",
)
def _(services, warehouse, quantity, reorder_point):
    return services.inventory.create(
        warehouse_id=warehouse["id"],
        location_id=warehouse["location_a"],
        sku="SKU-001",
        product_name="Widget",
        initial_quantity=quantity,
        unit_cost=2.5,
        thresholds={"reorder_point": reorder_point},
        created_by="receiver",
    )


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the available quantity is {quantity:d}"))
def _(services, record, quantity):
    assert services.inventory.get(str(record.id)).available == quantity


@then(parsers.cfparse("the reserved quantity is {quantity:d}"))
def _(services, record, quantity):
    assert services.inventory.get(str(record.id)).reserved == quantity


@then(parsers.cfparse('the stock status is "{status}"'))
def _(services, record, status):
    assert services.inventory.get(str(record.id)).stock_status == status


@then(parsers.cfparse('the action is rejected as "{kind}"'))
def _(error, kind):
    assert error["exc"] is not None, "Expected the action to be rejected"
    assert error_kind(error["exc"]) == kind
