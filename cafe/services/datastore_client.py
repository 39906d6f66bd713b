# cafe/services/datastore_client.py
import requests
from requests import RequestException

from cafe.utils.retry import http_retry
from cafe.utils.settings import DATASTORE_URL, DATASTORE_SERVICE_KEY
from cafe.utils.logging import get_logger

logger = get_logger(__name__)


class DataStoreError(Exception):
    def __init__(self, message: str, status_code: int | None = None, body: str | None = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class DataStoreClient:
    """
    Klient REST data store (dialekt PostgREST):
    - filtry jako ?kolumna=eq.wartosc
    - Prefer: return=representation zeby dostac wstawione wiersze z powrotem
    Odczyty maja retry, zapisy nie (insert nie jest idempotentny).
    """

    def __init__(self, base_url: str | None = None, service_key: str | None = None, timeout: int = 5):
        self.base_url = (base_url or DATASTORE_URL).rstrip("/")
        self.service_key = service_key if service_key is not None else DATASTORE_SERVICE_KEY
        self.timeout = timeout

    def _url(self, table: str) -> str:
        if not self.base_url or not self.service_key:
            raise DataStoreError("Data store not configured")
        return f"{self.base_url}/rest/v1/{table}"

    def _headers(self, prefer: str | None = None) -> dict:
        headers = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    @staticmethod
    def _filters(filters: dict | None) -> dict:
        return {column: f"eq.{value}" for column, value in (filters or {}).items()}

    def insert(self, table: str, rows, returning: bool = True) -> list:
        url = self._url(table)
        logger.info(f"DataStore POST {url}")

        try:
            resp = requests.post(
                url,
                json=rows,
                headers=self._headers("return=representation" if returning else "return=minimal"),
                timeout=self.timeout,
            )
        except RequestException as e:
            raise DataStoreError(f"Data store unreachable: {e}") from e

        if not resp.ok:
            raise DataStoreError(
                f"Insert into {table} failed: {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )

        return _rows(resp, f"Insert into {table}") if returning else []

    def update(self, table: str, values: dict, filters: dict) -> list:
        url = self._url(table)
        logger.info(f"DataStore PATCH {url} {filters}")

        try:
            resp = requests.patch(
                url,
                params=self._filters(filters),
                json=values,
                headers=self._headers("return=representation"),
                timeout=self.timeout,
            )
        except RequestException as e:
            raise DataStoreError(f"Data store unreachable: {e}") from e

        if not resp.ok:
            raise DataStoreError(
                f"Update of {table} failed: {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )

        return _rows(resp, f"Update of {table}")

    def select(
        self,
        table: str,
        columns: str = "*",
        filters: dict | None = None,
        order: str | None = None,
        limit: int | None = None,
    ) -> list:
        params = {"select": columns, **self._filters(filters)}
        if order:
            params["order"] = order
        if limit:
            params["limit"] = str(limit)

        try:
            resp = self._get(self._url(table), params)
        except RequestException as e:
            raise DataStoreError(f"Data store unreachable: {e}") from e

        if not resp.ok:
            raise DataStoreError(
                f"Select from {table} failed: {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )

        return _rows(resp, f"Select from {table}")

    @http_retry()
    def _get(self, url: str, params: dict) -> requests.Response:
        logger.info(f"DataStore GET {url} {params}")
        return requests.get(url, params=params, headers=self._headers(), timeout=self.timeout)


def _rows(resp: requests.Response, operation: str) -> list:
    #2xx z nie-JSONem (proxy, strona bledu) to tez blad zapisu
    try:
        return resp.json()
    except ValueError as e:
        raise DataStoreError(
            f"{operation} returned an unreadable response",
            status_code=resp.status_code,
            body=resp.text,
        ) from e
