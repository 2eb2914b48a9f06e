"""Tests for OrderService failure paths."""

from unittest.mock import MagicMock

import pytest
from bson import ObjectId
from pymongo.errors import AutoReconnect, WriteError

import services
from errors import OrderNotCreatedError, OrderNotFoundError
from schemas import OrderCreate
from services import OrderService


@pytest.fixture
def service(db):
    return OrderService(db, use_transactions=False)


def _order(service, order_payload, lines):
    return service.create(OrderCreate(**order_payload(lines)))


class TestCreateFailures:
    def test_order_insert_failure_discards_items(self, service, db, make_product, order_payload, monkeypatch):
        a = make_product("A", price=4)

        def boom(*args, **kwargs):
            raise AutoReconnect("connection lost")

        monkeypatch.setattr(services, "create_document", boom)

        with pytest.raises(OrderNotCreatedError):
            _order(service, order_payload, [(a, 1), (a, 2)])

        assert db["order"].count_documents({}) == 0
        assert db["order_item"].count_documents({}) == 0

    def test_item_insert_failure(self, service, db, make_product, order_payload, monkeypatch):
        a = make_product("A")

        def boom(*args, **kwargs):
            raise WriteError("write failed")

        monkeypatch.setattr(service.order_items, "insert_many", boom)

        with pytest.raises(OrderNotCreatedError):
            _order(service, order_payload, [(a, 1)])
        assert db["order"].count_documents({}) == 0


class TestCascadeDelete:
    def test_partial_failure_is_reported(self, service, db, make_product, order_payload, monkeypatch):
        a = make_product("A")
        order = _order(service, order_payload, [(a, 1), (a, 2), (a, 3)])
        failing = ObjectId(order["order_items"][1])
        real_delete_one = service.order_items.delete_one

        def flaky_delete_one(filter, *args, **kwargs):
            if filter["_id"] == failing:
                raise AutoReconnect("connection lost")
            return real_delete_one(filter, *args, **kwargs)

        monkeypatch.setattr(service.order_items, "delete_one", flaky_delete_one)

        result = service.delete(order["id"])

        assert result == {"deleted_items": 2, "failed_items": [str(failing)]}
        assert db["order"].count_documents({}) == 0
        assert [i["_id"] for i in db["order_item"].find()] == [failing]

    def test_missing_order(self, service):
        with pytest.raises(OrderNotFoundError):
            service.delete(str(ObjectId()))

    def test_transactional_delete_uses_one_session(self):
        db = MagicMock()
        item_ids = [ObjectId(), ObjectId()]
        db["order"].find_one_and_delete.return_value = {"_id": ObjectId(), "order_items": item_ids}
        db["order_item"].delete_many.return_value = MagicMock(deleted_count=2)
        session = db.client.start_session.return_value.__enter__.return_value

        result = OrderService(db, use_transactions=True).delete(str(ObjectId()))

        assert result == {"deleted_items": 2, "failed_items": []}
        session.start_transaction.assert_called_once()
        db["order_item"].delete_many.assert_called_once_with(
            {"_id": {"$in": item_ids}}, session=session
        )

    def test_transactional_delete_missing_order(self):
        db = MagicMock()
        db["order"].find_one_and_delete.return_value = None

        with pytest.raises(OrderNotFoundError):
            OrderService(db, use_transactions=True).delete(str(ObjectId()))


class TestTotalSales:
    def test_sums_stored_totals(self, service, make_product, order_payload):
        a = make_product("A", price=10)
        b = make_product("B", price=5)
        first = _order(service, order_payload, [(a, 2), (b, 1)])
        _order(service, order_payload, [(b, 3)])

        assert first["total_price"] == 25
        assert service.total_sales() == 40
        assert service.count() == 2

    def test_empty_is_zero(self, service):
        assert service.total_sales() == 0
