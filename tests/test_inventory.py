from datetime import datetime, timezone

from branchstock.modules.inventory.repository import ProductInventoryRepository
from branchstock.modules.inventory.transfer import ItemTransferResult, TransferLine, fold_results
from branchstock.modules.inventory.schemas import StockChange, TransferSuccess


def test_bounded_decrement_never_goes_negative(db_session, seed_product, counters):
    product = seed_product("Sandal", {"branch-a": 3})
    inventory = ProductInventoryRepository(db_session)

    assert inventory.decrement_if_available(product.id, "branch-a", 5) is None
    assert inventory.decrement_if_available(product.id, "Branch-A", 3) == 0
    assert inventory.decrement_if_available(product.id, "branch-a", 1) is None
    db_session.commit()

    assert counters(product.id) == {"branch-a": 0}


def test_decrement_missing_counter(db_session, seed_product):
    product = seed_product("Sandal", {"branch-a": 3})

    assert ProductInventoryRepository(db_session).decrement_if_available(product.id, "branch-z", 1) is None


def test_move_stock_returns_new_counters(db_session, seed_product):
    product = seed_product("Sandal", {"branch-a": 3, "branch-b": 1})
    inventory = ProductInventoryRepository(db_session)

    assert inventory.move_stock(product.id, "branch-a", "branch-b", 2) == (1, 3)
    assert inventory.move_stock(product.id, "branch-a", "branch-b", 2) is None


def test_set_counters_rejects_negative_values(db_session, seed_product, counters):
    product = seed_product("Sandal", {"branch-a": 3})
    inventory = ProductInventoryRepository(db_session)

    assert inventory.set_counters(product.id, {"branch-a": -1}) is False
    assert inventory.set_counters(999999, {"branch-a": 1}) is False
    assert inventory.set_counters(product.id, {"branch-a": 7, "Branch-C": 2}) is True
    db_session.commit()

    assert counters(product.id) == {"branch-a": 7, "branch-c": 2}
    assert inventory.get_counter(product.id, "branch-x") == 0


def test_fold_results_keeps_order():
    ok = TransferLine(product_id=1, product_name="A", quantity=2)
    bad = TransferLine(product_id=2, product_name="B", quantity=9)
    success = TransferSuccess(
        product_id=1, product_name="A", transferred_qty=2,
        source_stock=StockChange(before=5, after=3),
        destination_stock=StockChange(before=0, after=2),
    )
    completed_at = datetime(2026, 1, 5, tzinfo=timezone.utc)

    report = fold_results(
        [ItemTransferResult.failed(bad, "Product not found"), ItemTransferResult(line=ok, success=success)],
        completed_at=completed_at,
    )

    assert report.any_succeeded
    assert [s.product_id for s in report.successful] == [1]
    assert [(f.product_id, f.error) for f in report.failed] == [(2, "Product not found")]
    assert report.to_json()["completed_at"].startswith("2026-01-05")
