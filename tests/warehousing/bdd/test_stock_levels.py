"""BDD tests for stock levels, adjustments and reservations."""

from protean.exceptions import ProteanException
from pytest_bdd import given, parsers, scenarios, when

scenarios("features/stock_levels.feature")


@given(parsers.cfparse("{quantity:d} units were reserved"))
def _(services, record, quantity):
    services.reservations.reserve(str(record.id), quantity, reference="SO-100", reserved_by="clerk")


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse("the record is adjusted by {delta:d}"))
def _(services, record, delta):
    services.inventory.adjust(str(record.id), delta, reason="Shelf audit", actor="auditor")


@when(parsers.cfparse("{quantity:d} units are reserved"))
def _(services, record, quantity, error):
    try:
        services.reservations.reserve(str(record.id), quantity, reference="SO-200", reserved_by="clerk")
    except ProteanException as exc:
        error["exc"] = exc


@when(parsers.cfparse("{quantity:d} units are released"))
def _(services, record, quantity, error):
    try:
        services.reservations.release(str(record.id), quantity, reference="SO-100", released_by="clerk")
    except ProteanException as exc:
        error["exc"] = exc
