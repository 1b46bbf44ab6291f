from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from typing import Protocol

from pymongo import MongoClient

from biodiversity_platform.constants import EML_INDEX


class SearchIndex(Protocol):
    def index(self, index: str, id: str, document) -> str: ...

    def get(self, index: str, id: str) -> dict | None: ...

    def delete(self, index: str, id: str) -> int: ...


class MongoSearchIndex:
    """Search index backed by one MongoDB collection per index name, keyed by `_id`."""

    def __init__(self, client: MongoClient, database: str):
        self.client = client
        self.database = database

    def _collection(self, index: str):
        return self.client[self.database][index or EML_INDEX]

    def index(self, index: str, id: str, document) -> str:
        if isinstance(document, (str, bytes)):
            document = json.loads(document)
        if not isinstance(document, dict):
            document = {"document": document}
        body = {**document, "_indexed_at": datetime.now(timezone.utc)}
        body.pop("_id", None)
        self._collection(index).replace_one({"_id": id}, body, upsert=True)
        return id

    def get(self, index: str, id: str) -> dict | None:
        doc = self._collection(index).find_one({"_id": id})
        if doc is None:
            return None
        doc.pop("_indexed_at", None)
        doc.pop("_id", None)
        return doc

    def delete(self, index: str, id: str) -> int:
        return self._collection(index).delete_one({"_id": id}).deleted_count


def create_search_index() -> MongoSearchIndex:
    client = MongoClient(os.getenv("SEARCH_INDEX_URL", "mongodb://localhost:27017"))
    return MongoSearchIndex(client, os.getenv("SEARCH_INDEX_DB", "biodiversity"))
