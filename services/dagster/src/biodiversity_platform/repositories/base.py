from __future__ import annotations

import json

from biodiversity_platform.errors import ApiExecuteSQLError
from biodiversity_platform.utils.db import DBConnection

EXPECTED_ONE_ROW = "expected exactly one row"


def json_value(value):
    """JSON columns come back decoded from PostgreSQL and as text from SQLite."""
    if isinstance(value, (str, bytes)):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def to_json_text(value) -> str | None:
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value)


class BaseRepository:
    def __init__(self, connection: DBConnection):
        self.connection = connection

    def _one(self, rows, message: str, method: str):
        if len(rows) != 1:
            raise ApiExecuteSQLError(message, [f"{type(self).__name__}->{method}", EXPECTED_ONE_ROW])
        return rows[0]
