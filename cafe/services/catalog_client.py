# cafe/services/catalog_client.py
import requests
from requests import RequestException

from cafe.domain.errors import InvalidLineItem, CatalogUnavailable
from cafe.utils.retry import http_retry
from cafe.utils.settings import CATALOG_SERVICE_URL
from cafe.utils.logging import get_logger

logger = get_logger(__name__)


class CatalogClient:
    """Odczyt pozycji menu (id, name, price, available) z serwisu katalogu."""

    def __init__(self, base_url: str | None = None, timeout: int = 2):
        self.base_url = (base_url or CATALOG_SERVICE_URL).rstrip("/")
        self.timeout = timeout

    def fetch_menu_item(self, menu_item_id: int) -> dict:
        try:
            resp = self._get(menu_item_id)
        except RequestException as e:
            logger.error(f"Catalog service unreachable: {e}")
            raise CatalogUnavailable(f"Catalog service unreachable: {e}") from e

        if resp.status_code == 404:
            raise InvalidLineItem(f"Menu item {menu_item_id} does not exist")
        if not resp.ok:
            raise CatalogUnavailable(f"Catalog service error {resp.status_code}: {resp.text}")

        item = resp.json()
        if not item.get("available", True):
            raise InvalidLineItem(f"Menu item {item.get('name', menu_item_id)} is not available")
        return item

    @http_retry()
    def _get(self, menu_item_id: int) -> requests.Response:
        url = f"{self.base_url}/menu-items/{menu_item_id}"
        logger.info(f"CatalogClient GET {url}")
        return requests.get(url, timeout=self.timeout)
