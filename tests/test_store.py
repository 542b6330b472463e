from __future__ import annotations

import logging

import pytest
from pymongo.errors import PyMongoError
from sqlalchemy import select

from photo_site.store import (
    LogSink,
    MetadataStore,
    ResourceAccessRow,
    SiteLogRow,
    build_tag_filter,
    init_db,
    install_log_sink,
    photography_token_valid,
    session_factory,
    site_credentials_valid,
)
from photo_site.store.log_sink import LogSinkHandler

SECRETS = {
    "secrets": {
        "photography_tools": {"api_token": "s3cret"},
        "express": {"username": "site", "password": "pw"},
    }
}


@pytest.mark.parametrize(
    ("expression", "expected"),
    [
        (None, {}),
        ("", {}),
        ("   ", {}),
        ("wildlife", {"tags.wildlife": True}),
        ("wildlife bird", {"tags.wildlife": True, "tags.bird": True}),
        ("  wildlife   bird ", {"tags.wildlife": True, "tags.bird": True}),
    ],
)
def test_build_tag_filter(expression, expected) -> None:
    assert build_tag_filter(expression) == expected


def _seed(store: MetadataStore) -> None:
    store.upsert_photo(
        {
            "id": "p1",
            "tags": {"wildlife": True},
            "big_thumb": "big_thumb.webp",
            "small_thumb": "small_thumb.webp",
            "raw": "raw.NEF",
        }
    )
    store.upsert_photo(
        {
            "id": "p2",
            "tags": {"wildlife": True, "bird": True},
            "big_thumb": "big_thumb.jpg",
            "small_thumb": "small_thumb.jpg",
            "camera": "Nikon Z 6",
        }
    )


def test_find_photos_filters_on_every_tag(store: MetadataStore) -> None:
    _seed(store)

    everything = store.find_photos()
    assert sorted(doc["id"] for doc in everything) == ["p1", "p2"]
    assert store.find_photos("wildlife bird") == [
        {"id": "p2", "big_thumb": "big_thumb.jpg", "small_thumb": "small_thumb.jpg"}
    ]
    assert store.find_photos("fish") == []


def test_get_photo_omits_tags_and_store_id(store: MetadataStore) -> None:
    _seed(store)

    [photo] = store.get_photo("p2")
    assert photo == {
        "id": "p2",
        "big_thumb": "big_thumb.jpg",
        "small_thumb": "small_thumb.jpg",
        "camera": "Nikon Z 6",
    }
    assert store.get_photo("missing") == []


def test_upsert_replaces_fields_of_existing_record(store: MetadataStore) -> None:
    store.upsert_photo({"id": "p1", "tags": {"bird": True}, "raw": "raw.jpg"})
    store.upsert_photo({"id": "p1", "tags": {"bird": True}, "raw": "raw.NEF", "iso": 100})

    [photo] = store.get_photo("p1")
    assert photo == {"id": "p1", "raw": "raw.NEF", "iso": 100}
    assert store.count_photos() == 1


def test_tags_document_is_replaced(store: MetadataStore) -> None:
    assert store.get_tags() == {}
    tag_index = {"bird": True}
    store.replace_tags(tag_index)
    store.replace_tags({"fish": True})

    assert store.get_tags() == {"fish": True}
    assert tag_index == {"bird": True}


def test_client_is_closed_when_operation_fails(store: MetadataStore, mongo) -> None:
    class Boom(PyMongoError):
        pass

    with pytest.raises(Boom):
        with store.database():
            raise Boom("server went away")
    assert mongo.closed == mongo.opened == 1


def test_photography_token_check() -> None:
    assert photography_token_valid(SECRETS, "s3cret")
    assert not photography_token_valid(SECRETS, "wrong")
    assert not photography_token_valid(SECRETS, None)
    assert not photography_token_valid({}, "s3cret")


def test_site_credentials_check() -> None:
    assert site_credentials_valid(SECRETS, "site", "pw")
    assert not site_credentials_valid(SECRETS, "site", "nope")
    assert not site_credentials_valid({"secrets": {"express": "flat"}}, "site", "pw")
    assert not site_credentials_valid(
        {"secrets": {"site_api": {"username": "site", "password": "pw"}}}, "site", "pw"
    )


def test_log_sink_appends_entries(read_rows) -> None:
    engine = init_db("sqlite+pysqlite:///:memory:")
    sink = LogSink(engine)

    sink.append("MAIN", "INFO", "listening")
    sink.log_resource_access("/gallery", "10.0.0.1")

    [entry] = read_rows(engine, SiteLogRow)
    assert (entry.category, entry.level, entry.message) == ("MAIN", "INFO", "listening")
    [access] = read_rows(engine, ResourceAccessRow)
    assert (access.location, access.ip_address) == ("/gallery", "10.0.0.1")


def test_log_sink_handler_mirrors_package_records() -> None:
    engine = init_db("sqlite+pysqlite:///:memory:")
    sink = LogSink(engine)
    handler = install_log_sink(sink)
    try:
        install_log_sink(sink)
        package_logger = logging.getLogger("photo_site")
        assert sum(isinstance(h, LogSinkHandler) for h in package_logger.handlers) == 1

        logging.getLogger("photo_site.ingest.pipeline").warning("skipped %s", "a.json")
        logging.getLogger("photo_site.api.http_api").error(
            "upload failed", extra={"category": "PHOTOGRAPHY"}
        )
    finally:
        for h in list(logging.getLogger("photo_site").handlers):
            if isinstance(h, LogSinkHandler):
                logging.getLogger("photo_site").removeHandler(h)

    SessionLocal = session_factory(engine)
    with SessionLocal() as session:
        rows = session.scalars(select(SiteLogRow).order_by(SiteLogRow.id)).all()
    assert [(r.category, r.level, r.message) for r in rows] == [
        ("INGEST", "WARNING", "skipped a.json"),
        ("PHOTOGRAPHY", "ERROR", "upload failed"),
    ]
    assert handler.sink is sink
