"""Fetch results from a published Google Sheet (gviz JSON), filter by email, optionally UPSERT into sheet_results."""
import argparse
import json
import logging
import os

import requests
from dotenv import load_dotenv

from db import get_supabase_uncached, upsert_rows_bulk

load_dotenv()

logger = logging.getLogger(__name__)

GVIZ_URL = "https://docs.google.com/spreadsheets/d/{sheet_id}/gviz/tq?tqx=out:json&gid={gid}"
DEFAULT_SHEET_ID = os.getenv("RESULTS_SHEET_ID", "")
DEFAULT_GID = os.getenv("RESULTS_SHEET_GID", "0")
REQUEST_TIMEOUT = 30


class SheetImportError(Exception):
    """The sheet could not be fetched or did not contain a gviz table."""


def fetch_sheet(sheet_id: str, gid: str = DEFAULT_GID, session: requests.Session | None = None) -> str:
    if not sheet_id:
        raise SheetImportError("No sheet id given (set RESULTS_SHEET_ID or pass --sheet-id)")
    url = GVIZ_URL.format(sheet_id=sheet_id, gid=gid)
    http = session or requests
    try:
        response = http.get(url, timeout=REQUEST_TIMEOUT)
    except requests.RequestException as e:
        raise SheetImportError(f"Failed to fetch data: {e}") from e
    if response.status_code != 200:
        raise SheetImportError(f"Failed to fetch data: {response.status_code} {response.reason}")
    return response.text


def extract_table(text: str) -> dict:
    """The gviz body is JSON wrapped in a JS call; keep everything from the first '{' to the last '}'."""
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end == -1 or end < start:
        raise SheetImportError("Invalid response format from Google Sheets")
    try:
        data = json.loads(text[start : end + 1])
    except json.JSONDecodeError as e:
        raise SheetImportError(f"Invalid response format from Google Sheets: {e}") from e
    table = data.get("table") if isinstance(data, dict) else None
    if not table or not table.get("rows"):
        raise SheetImportError("No data found in the spreadsheet")
    return table


def _cell(cells: list, index: int):
    if index >= len(cells) or not isinstance(cells[index], dict):
        return None
    return cells[index].get("v")


def _to_float(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def parse_rows(table: dict) -> list[dict]:
    """Columns: 0 timestamp, 1 score, 2 username (email), 3 percentage. Rows without cells are skipped."""
    rows = []
    for index, row in enumerate(table.get("rows") or []):
        cells = (row or {}).get("c") or []
        if not cells:
            continue
        rows.append({
            "id": f"result-{index}",
            "timestamp": str(_cell(cells, 0) or ""),
            "score": str(_cell(cells, 1) or ""),
            "username": str(_cell(cells, 2) or "").strip().lower(),
            "percentage": _to_float(_cell(cells, 3)),
        })
    return rows


def unique_emails(rows: list[dict]) -> list[str]:
    """Distinct usernames in first-seen order."""
    seen = []
    for row in rows:
        if row["username"] and row["username"] not in seen:
            seen.append(row["username"])
    return seen


def matches_email(username: str, email: str, loose: bool = True) -> bool:
    """Exact match, or containment either way; `loose` also compares the part before '@'."""
    username = (username or "").strip().lower()
    email = (email or "").strip().lower()
    if not username or not email:
        return False
    if username == email or email in username or username in email:
        return True
    if loose:
        local = email.split("@")[0]
        return bool(local) and (local in username or username in local)
    return False


def filter_rows(rows: list[dict], email: str, loose: bool = True) -> list[dict]:
    return [row for row in rows if matches_email(row["username"], email, loose=loose)]


def load_results(sheet_id: str = DEFAULT_SHEET_ID, gid: str = DEFAULT_GID, email: str | None = None,
                 loose: bool = True, session: requests.Session | None = None) -> list[dict]:
    rows = parse_rows(extract_table(fetch_sheet(sheet_id, gid, session=session)))
    if email:
        rows = filter_rows(rows, email, loose=loose)
    logger.info("Parsed %d sheet rows%s", len(rows), f" for {email}" if email else "")
    return rows


def run_import(sheet_id: str = DEFAULT_SHEET_ID, gid: str = DEFAULT_GID, email: str | None = None,
               chunk_size: int = 200, dry_run: bool = False, strict: bool = False):
    rows = load_results(sheet_id, gid, email=email, loose=not strict)
    if dry_run:
        print(f"Dry run: would upsert {len(rows)} rows from sheet {sheet_id}")
        print(f"Emails: {', '.join(unique_emails(rows)) or '(none)'}")
        if rows:
            print("Sample row:", rows[0])
        return rows

    client = get_supabase_uncached()
    count = upsert_rows_bulk(client, "sheet_results", rows, chunk_size=chunk_size)
    print(f"Upserted {count} rows from sheet {sheet_id}")
    return rows


if __name__ == "__main__":
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"), format="%(levelname)s: %(message)s")
    parser = argparse.ArgumentParser(description="Import test results from a published Google Sheet into Supabase.")
    parser.add_argument("--sheet-id", default=DEFAULT_SHEET_ID, help="Spreadsheet id (default: $RESULTS_SHEET_ID)")
    parser.add_argument("--gid", default=DEFAULT_GID, help="Sheet tab gid (default: $RESULTS_SHEET_GID or 0)")
    parser.add_argument("--email", default=None, help="Only rows whose username matches this email")
    parser.add_argument("--strict", action="store_true", help="Do not match on the part before '@'")
    parser.add_argument("--chunk-size", type=int, default=200, help="Upsert chunk size (default 200)")
    parser.add_argument("--dry-run", action="store_true", help="Fetch and parse only, do not upsert")
    args = parser.parse_args()
    try:
        run_import(sheet_id=args.sheet_id, gid=args.gid, email=args.email,
                   chunk_size=args.chunk_size, dry_run=args.dry_run, strict=args.strict)
    except SheetImportError as e:
        logger.error("%s", e)
        raise SystemExit(1)
