import threading
from decimal import Decimal

import pytest

from errors import InsufficientStock, ProductNotFound, ValidationError
from schemas import Product


def test_add_product_assigns_id(ledger):
    product = ledger.add_product(Product(title="Chocolate", price=Decimal("3.00"), total_stock=7))

    assert product.id
    assert ledger.get_stock(product.id) == 7


def test_reserve_decrements(ledger, pen):
    remaining = ledger.reserve(pen.id, 2)

    assert remaining == 3
    assert ledger.get_stock(pen.id) == 3


def test_reserve_whole_stock_reaches_zero(ledger, pen):
    ledger.reserve(pen.id, 5)

    assert ledger.get_stock(pen.id) == 0
    with pytest.raises(InsufficientStock):
        ledger.reserve(pen.id, 1)


def test_reserve_more_than_stock_leaves_counter(ledger, pen):
    with pytest.raises(InsufficientStock) as excinfo:
        ledger.reserve(pen.id, 6)

    err = excinfo.value
    assert (err.product_id, err.title, err.requested, err.available) == (pen.id, "Pen", 6, 5)
    assert ledger.get_stock(pen.id) == 5


def test_reserve_unknown_product(ledger):
    with pytest.raises(ProductNotFound):
        ledger.reserve("65f000000000000000000000", 1)
    with pytest.raises(ProductNotFound):
        ledger.reserve("garbage", 1)


def test_reserve_rejects_non_positive_quantity(ledger, pen):
    with pytest.raises(ValidationError):
        ledger.reserve(pen.id, 0)


def test_release_returns_units(ledger, pen):
    ledger.reserve(pen.id, 4)
    ledger.release(pen.id, 4)

    assert ledger.get_stock(pen.id) == 5


def test_release_unknown_product(ledger):
    with pytest.raises(ProductNotFound):
        ledger.release("65f000000000000000000000", 1)


def test_get_stock_unknown_product(ledger):
    with pytest.raises(ProductNotFound):
        ledger.get_stock("65f000000000000000000000")


def test_concurrent_reserves_never_oversell(ledger, pen):
    workers = 12
    start = threading.Barrier(workers)
    outcomes = []
    lock = threading.Lock()

    def buy_one():
        start.wait()
        try:
            ledger.reserve(pen.id, 1)
            result = "ok"
        except InsufficientStock:
            result = "sold out"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=buy_one) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count("ok") == 5
    assert outcomes.count("sold out") == workers - 5
    assert ledger.get_stock(pen.id) == 0


def test_reserve_does_not_depend_on_product_shape(ledger, pen, database):
    database["product"].update_one({"title": "Pen"}, {"$unset": {"title": "", "price": ""}})

    assert ledger.reserve(pen.id, 2) == 3
    assert ledger.get_stock(pen.id) == 3
