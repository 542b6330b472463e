from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

from pymongo import MongoClient
from pymongo.database import Database

logger = logging.getLogger(__name__)

DEFAULT_DATABASE = "photography"
PHOTOS_COLLECTION = "photos"
TAGS_COLLECTION = "tags"

PHOTO_SUMMARY_PROJECTION = {"_id": 0, "id": 1, "big_thumb": 1, "small_thumb": 1}
PHOTO_DETAIL_PROJECTION = {"_id": 0, "tags": 0}


def build_tag_filter(tag_query: Optional[str]) -> dict[str, bool]:
    """Turn a whitespace separated tag expression into a MongoDB filter.

    ``"wildlife bird"`` (``?tags=wildlife+bird`` on the wire) becomes
    ``{"tags.wildlife": True, "tags.bird": True}``. An empty expression
    matches every record.
    """
    if not tag_query or not tag_query.strip():
        return {}
    return {f"tags.{tag}": True for tag in tag_query.split()}


class MetadataStore:
    """Document store for photo records and the tag index.

    Every operation opens its own client and closes it before returning,
    whether or not the operation succeeded.
    """

    def __init__(
        self,
        uri: str,
        database_name: str = DEFAULT_DATABASE,
        client_factory: Callable[[str], Any] = MongoClient,
    ) -> None:
        self.uri = uri
        self.database_name = database_name
        self._client_factory = client_factory

    @contextmanager
    def database(self) -> Iterator[Database]:
        client = self._client_factory(self.uri)
        try:
            yield client[self.database_name]
        finally:
            client.close()

    def rebuild_collections(self) -> None:
        """Drop and recreate the photos and tags collections."""
        with self.database() as db:
            for name in (PHOTOS_COLLECTION, TAGS_COLLECTION):
                db.drop_collection(name)
                db.create_collection(name)
        logger.info("Recreated %s and %s in %s", PHOTOS_COLLECTION, TAGS_COLLECTION, self.database_name)

    def upsert_photo(self, record: dict) -> None:
        document = {key: value for key, value in record.items() if key != "_id"}
        with self.database() as db:
            db[PHOTOS_COLLECTION].update_one(
                {"id": document["id"]}, {"$set": document}, upsert=True
            )

    def replace_tags(self, tag_index: dict[str, bool]) -> None:
        with self.database() as db:
            collection = db[TAGS_COLLECTION]
            collection.delete_many({})
            # insert_one adds _id to the dict it is given
            collection.insert_one(dict(tag_index))

    def get_tags(self) -> dict[str, bool]:
        with self.database() as db:
            document = db[TAGS_COLLECTION].find_one({}, {"_id": 0})
        return document or {}

    def find_photos(self, tag_query: Optional[str] = None) -> list[dict]:
        query = build_tag_filter(tag_query)
        with self.database() as db:
            return list(db[PHOTOS_COLLECTION].find(query, PHOTO_SUMMARY_PROJECTION))

    def get_photo(self, photo_id: str) -> list[dict]:
        with self.database() as db:
            return list(db[PHOTOS_COLLECTION].find({"id": photo_id}, PHOTO_DETAIL_PROJECTION))

    def count_photos(self) -> int:
        with self.database() as db:
            return db[PHOTOS_COLLECTION].count_documents({})
