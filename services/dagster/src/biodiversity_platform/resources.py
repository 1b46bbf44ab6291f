import os

from dagster import resource
from sqlalchemy import create_engine

from biodiversity_platform.utils.object_store import create_object_store
from biodiversity_platform.utils.search_index import create_search_index


def _metadata_db_url() -> str:
    direct_url = os.getenv("METADATA_DB_URL")
    if direct_url:
        return direct_url

    return (
        f"postgresql+psycopg2://{os.getenv('METADATA_PG_USER')}:{os.getenv('METADATA_PG_PASSWORD')}"
        f"@{os.getenv('METADATA_PG_HOST')}:{os.getenv('METADATA_PG_PORT')}/{os.getenv('METADATA_PG_DB')}"
    )


@resource
def metadata_db_resource(_context):
    engine = create_engine(_metadata_db_url(), future=True)
    try:
        yield engine
    finally:
        engine.dispose()


@resource
def object_store_resource(_context):
    yield create_object_store()


@resource
def search_index_resource(_context):
    search_index = create_search_index()
    try:
        yield search_index
    finally:
        search_index.client.close()
