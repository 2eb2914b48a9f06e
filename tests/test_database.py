"""Tests for the document helpers."""

from datetime import datetime

import pytest
from bson import ObjectId

from database import create_document, get_documents, parse_object_id, serialize_doc
from errors import InvalidIdError
from schemas import Category


def test_serialize_doc_renames_id_and_stringifies_references():
    oid, ref, nested = ObjectId(), ObjectId(), ObjectId()
    doc = {
        "_id": oid,
        "__v": 0,
        "user": ref,
        "order_items": [{"_id": nested, "product": None}],
        "date_ordered": datetime(2024, 1, 1),
    }

    out = serialize_doc(doc)

    assert out == {
        "id": str(oid),
        "user": str(ref),
        "order_items": [{"id": str(nested), "product": None}],
        "date_ordered": datetime(2024, 1, 1),
    }


def test_serialize_doc_passes_through_empty():
    assert serialize_doc(None) is None


def test_parse_object_id():
    oid = ObjectId()
    assert parse_object_id(str(oid)) == oid
    assert parse_object_id(oid) is oid

    with pytest.raises(InvalidIdError, match="Invalid order id: abc"):
        parse_object_id("abc", "order")


def test_create_document_accepts_models_and_stamps_creation(db):
    new_id = create_document(db, "category", Category(name="Casa"))

    stored = db["category"].find_one({"_id": ObjectId(new_id)})
    assert stored["name"] == "Casa"
    assert isinstance(stored["created_at"], datetime)


def test_get_documents_sort_and_limit(db):
    for n in (3, 1, 2):
        db["thing"].insert_one({"n": n})

    assert [d["n"] for d in get_documents(db, "thing", sort=[("n", 1)])] == [1, 2, 3]
    assert [d["n"] for d in get_documents(db, "thing", {"n": {"$gt": 1}}, limit=1, sort=[("n", -1)])] == [3]
