"""
Shopify Admin GraphQL client for access-bot.

Only one capability is needed: fetch the paid line items for a customer
email, each flagged as subscription or one-time with the order's payment time.
"""

import logging
from typing import Any

import httpx

from .config import ShopifyConfig
from .errors import GatewayError
from .models import PurchaseLineItem

logger = logging.getLogger(__name__)

ORDERS_BY_EMAIL_QUERY = """
query OrdersByEmail($first: Int!, $query: String!) {
  orders(first: $first, query: $query, reverse: true) {
    nodes {
      id
      createdAt
      processedAt
      displayFinancialStatus
      lineItems(first: 50) {
        nodes {
          title
          sellingPlan {
            name
          }
        }
      }
    }
  }
}
"""


def parse_line_items(data: dict[str, Any] | None) -> list[PurchaseLineItem]:
    """Flatten an orders query result into line items."""
    orders = ((data or {}).get("orders") or {}).get("nodes") or []

    items: list[PurchaseLineItem] = []
    for order in orders:
        paid_at = order.get("processedAt") or order.get("createdAt")
        line_items = (order.get("lineItems") or {}).get("nodes") or []
        for li in line_items:
            plan_name = (li.get("sellingPlan") or {}).get("name") or None
            items.append(
                PurchaseLineItem(
                    title=li.get("title") or "",
                    is_subscription=bool(plan_name),
                    subscription_plan_name=plan_name,
                    paid_at=paid_at,
                )
            )
    return items


class ShopifyGateway:
    """Client for the Shopify Admin GraphQL API."""

    def __init__(
        self,
        store_domain: str,
        access_token: str | None,
        api_version: str = "2024-10",
        timeout_seconds: float = 15.0,
        max_orders: int = 10,
    ):
        self.store_domain = store_domain.strip().removeprefix("https://").rstrip("/")
        self.access_token = access_token
        self.api_version = api_version
        self.timeout = timeout_seconds
        self.max_orders = max_orders

    @classmethod
    def from_config(cls, config: ShopifyConfig) -> "ShopifyGateway":
        return cls(
            store_domain=config.store_domain,
            access_token=config.get_access_token(),
            api_version=config.api_version,
            timeout_seconds=config.timeout_seconds,
        )

    @property
    def url(self) -> str:
        return f"https://{self.store_domain}/admin/api/{self.api_version}/graphql.json"

    def _check_credentials(self) -> None:
        missing = []
        if not self.store_domain:
            missing.append("store_domain")
        if not self.access_token:
            missing.append("access_token")
        if not self.api_version:
            missing.append("api_version")
        if missing:
            raise GatewayError(f"Missing Shopify settings: {', '.join(missing)}")

    async def graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict:
        """Run a GraphQL query and return its data block."""
        self._check_credentials()

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(
                    self.url,
                    headers={
                        "Content-Type": "application/json",
                        "X-Shopify-Access-Token": self.access_token,
                    },
                    json={"query": query, "variables": variables or {}},
                )
            except httpx.RequestError as e:
                raise GatewayError(f"Shopify request failed: {e}") from e

        if response.status_code != 200:
            raise GatewayError(f"Shopify HTTP {response.status_code}: {response.text[:500]}")

        try:
            payload = response.json()
        except ValueError as e:
            raise GatewayError(f"Shopify returned invalid JSON: {e}") from e

        if payload.get("errors"):
            raise GatewayError(f"Shopify GraphQL errors: {payload['errors']}")

        return payload.get("data") or {}

    async def fetch_paid_line_items(self, email: str) -> list[PurchaseLineItem]:
        """
        Get paid line items for an email, newest orders first.

        An empty list means no paid orders; it is not an error.
        """
        search = f"email:{email} financial_status:paid"
        logger.debug(f"Fetching paid orders ({self.max_orders} max)")

        data = await self.graphql(
            ORDERS_BY_EMAIL_QUERY,
            {"first": self.max_orders, "query": search},
        )
        items = parse_line_items(data)
        logger.debug(f"Shopify returned {len(items)} paid line item(s)")
        return items
