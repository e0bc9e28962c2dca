"""Supabase client factory. Client is cached via Streamlit."""
import logging
import os

import streamlit as st
from dotenv import load_dotenv
from supabase import create_client, Client

load_dotenv()


def _env_client() -> Client:
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get("SUPABASE_KEY")
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set")
    return create_client(url, key)


@st.cache_resource
def get_supabase() -> Client:
    return _env_client()


def get_supabase_uncached() -> Client:
    """For CLI/scripts (no Streamlit context)."""
    return _env_client()


def upsert_rows_bulk(client: Client, table: str, rows: list[dict], key: str = "id", chunk_size: int = 200) -> int:
    """Bulk upsert into `table`. Dedupes by `key` so no chunk has duplicates (avoids Postgres ON CONFLICT error)."""
    log = logging.getLogger(__name__)
    n_before = len(rows)
    by_key = {r[key]: r for r in rows}
    rows = list(by_key.values())
    if len(rows) < n_before:
        log.info("Deduped %s rows by %s: %d -> %d", table, key, n_before, len(rows))
    n_chunks = (len(rows) + chunk_size - 1) // chunk_size
    for i in range(0, len(rows), chunk_size):
        chunk = rows[i : i + chunk_size]
        log.info("Upserting %s chunk %d/%d (%d rows)", table, i // chunk_size + 1, n_chunks, len(chunk))
        client.table(table).upsert(chunk, on_conflict=key).execute()
    return len(rows)
