# src/api/schedule_client.py
#
#   handles all interactions with the hosted schedule database (Supabase / PostgREST)
#   one HTTP call per operation; no transactions, no retries

import logging
from typing import Optional

import httpx

from config import settings
from src.db import ORDER_BY, SqliteScheduleStore, StoreError, is_valid_table_name

logger = logging.getLogger(__name__)

CREATE_TABLE_FUNCTION = "create_cohort_schedule_table"

# PostgREST / Postgres codes for "function does not exist"
MISSING_FUNCTION_CODES = {"PGRST202", "42883"}


class SupabaseScheduleStore:
    """
    Schedule store talking to the PostgREST API of a Supabase project.

    Args:
        url (str): project URL, e.g. https://xyz.supabase.co
        service_key (str): service-role key (bypasses row level security)
        client (httpx.Client): optional pre-built client (tests pass one with a MockTransport)
        timeout (float): request timeout in seconds
    """

    def __init__(self, url: str, service_key: str, client: Optional[httpx.Client] = None,
                 timeout: float = 10.0):
        self.base_url = url.rstrip("/") + "/rest/v1"
        headers = {
            "apikey": service_key,
            "Authorization": f"Bearer {service_key}",
            "Content-Type": "application/json",
        }
        if client is None:
            client = httpx.Client(timeout=timeout)
        client.headers.update(headers)
        self.client = client

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self.client.request(method, f"{self.base_url}/{path}", **kwargs)
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {path} failed: {e}") from e

        if response.is_error:
            code = None
            message = response.text or response.reason_phrase
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                code = body.get("code")
                message = body.get("message") or message
            raise StoreError(message, code=code)
        return response

    @staticmethod
    def _check_table(table_name: str):
        if not is_valid_table_name(table_name):
            raise StoreError(f"Invalid table name: {table_name!r}", code="invalid_table")

    def create_schedule_table(self, table_name: str):
        """Invoke the create_cohort_schedule_table stored procedure."""
        self._check_table(table_name)
        self._request("POST", f"rpc/{CREATE_TABLE_FUNCTION}", json={"table_name": table_name})
        logger.info("Created schedule table %s", table_name)

    def fetch_sessions(self, table_name: str, order_by: str = "week_session"):
        """
        Fetch every row of a schedule table.
        Returns: list of dicts, ordered by week/session (default) or by date.
        """
        self._check_table(table_name)
        if order_by not in ORDER_BY:
            raise ValueError(f"Unknown ordering: {order_by}")
        params = {
            "select": "*",
            "order": ",".join(f"{col}.asc" for col in ORDER_BY[order_by]),
        }
        rows = self._request("GET", table_name, params=params).json()
        if not isinstance(rows, list):
            raise StoreError(f"Unexpected response fetching {table_name}")
        return rows

    def update_session(self, table_name: str, session_id: int, fields: dict):
        """PATCH one row by id."""
        self._check_table(table_name)
        self._request(
            "PATCH",
            table_name,
            params={"id": f"eq.{session_id}"},
            json=fields,
            headers={"Prefer": "return=minimal"},
        )

    def insert_sessions(self, table_name: str, rows: list) -> int:
        """Bulk insert. Returns: number of rows sent."""
        self._check_table(table_name)
        if not rows:
            return 0
        self._request("POST", table_name, json=rows, headers={"Prefer": "return=minimal"})
        return len(rows)

    def close(self):
        self.client.close()


def build_schedule_store():
    """
    Store selected by SCHEDULE_STORE: the hosted database ("supabase")
    or a local SQLite file ("sqlite").
    """
    if settings.SCHEDULE_STORE == "sqlite":
        return SqliteScheduleStore(settings.SCHEDULE_DB_PATH)
    if settings.SCHEDULE_STORE == "supabase":
        url, key = settings.require_supabase_settings()
        return SupabaseScheduleStore(url, key, timeout=settings.HTTP_TIMEOUT)
    raise RuntimeError(f"Unknown SCHEDULE_STORE: {settings.SCHEDULE_STORE}")
