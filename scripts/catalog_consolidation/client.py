"""
Catalog Service client (Shopify Admin GraphQL API).

Every public method returns a ServiceResult. Transport problems, top-level
GraphQL errors and mutation `userErrors` are all reported as failures rather
than raised, so callers handle one shape.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

import requests

from .models import CatalogEntry, ErrorKind, ServiceResult, VariantRecord, format_price

log = logging.getLogger(__name__)

MAX_PAGE_SIZE = 250
READ_RETRY_STATUS: FrozenSet[int] = frozenset({429, 502, 503, 504})
# A throttled request (HTTP 429 or a THROTTLED error code) was never executed,
# so writes may safely retry it.
WRITE_RETRY_STATUS: FrozenSet[int] = frozenset({429})

PRODUCTS_PAGE = """
query catalogPage($first: Int!, $after: String) {
  products(first: $first, after: $after, sortKey: ID) {
    nodes {
      id
      title
      handle
      vendor
      productType
      status
      totalInventory
      options { id name values }
      featuredImage { url }
      images(first: 10) { nodes { url } }
      variants(first: 100) {
        nodes {
          id
          title
          sku
          price
          compareAtPrice
          inventoryQuantity
          selectedOptions { name value }
        }
      }
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""

PRODUCT_UPDATE = """
mutation productUpdate($input: ProductInput!) {
  productUpdate(input: $input) {
    product { id title status }
    userErrors { field message }
  }
}
"""

OPTION_UPDATE = """
mutation optionUpdate($productId: ID!, $option: OptionUpdateInput!) {
  productOptionUpdate(productId: $productId, option: $option) {
    product { id options { id name values } }
    userErrors { field message }
  }
}
"""

VARIANTS_BULK_CREATE = """
mutation bulkCreate($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
  productVariantsBulkCreate(productId: $productId, variants: $variants) {
    productVariants { id title sku price compareAtPrice inventoryQuantity selectedOptions { name value } }
    userErrors { field message }
  }
}
"""

VARIANTS_BULK_UPDATE = """
mutation bulkUpdate($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
  productVariantsBulkUpdate(productId: $productId, variants: $variants) {
    productVariants { id title sku price compareAtPrice inventoryQuantity selectedOptions { name value } }
    userErrors { field message }
  }
}
"""


class CatalogServiceClient:
    """Thin Admin GraphQL wrapper shared by the loader and the executor."""

    def __init__(
        self,
        domain: str,
        token: str,
        api_version: str = "2025-01",
        timeout: float = 30,
        max_attempts: int = 5,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.endpoint = f"https://{domain}/admin/api/{api_version}/graphql.json"
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.sleep = sleep
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "X-Shopify-Access-Token": token,
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )

    # ------------------------------------------------------------------ core

    def execute(
        self,
        query: str,
        variables: Optional[Dict] = None,
        retry_status: FrozenSet[int] = READ_RETRY_STATUS,
        retry_transport: bool = True,
    ) -> ServiceResult[Dict]:
        attempt = 0
        while True:
            attempt += 1
            try:
                response = self.session.post(
                    self.endpoint,
                    json={"query": query, "variables": variables or {}},
                    timeout=self.timeout,
                )
            except requests.RequestException as exc:
                if retry_transport and attempt < self.max_attempts:
                    delay = min(5, 2 ** attempt)
                    log.warning("Request failed (%s), retrying in %ss", exc, delay)
                    self.sleep(delay)
                    continue
                return ServiceResult.failure(ErrorKind.TRANSPORT, str(exc))

            if response.status_code in retry_status and attempt < self.max_attempts:
                retry_after = _retry_after(response.headers.get("Retry-After"))
                log.warning("HTTP %s from Catalog Service, retrying in %ss", response.status_code, retry_after)
                self.sleep(retry_after)
                continue

            if response.status_code != 200:
                return ServiceResult.failure(
                    ErrorKind.TRANSPORT, f"HTTP {response.status_code}: {response.text[:500]}"
                )

            try:
                payload = response.json()
            except ValueError as exc:
                return ServiceResult.failure(ErrorKind.TRANSPORT, f"invalid JSON response: {exc}")

            errors = payload.get("errors") or []
            if errors and _is_throttled(errors) and attempt < self.max_attempts:
                delay = min(5, 2 ** attempt)
                log.warning("Catalog Service throttled the request, retrying in %ss", delay)
                self.sleep(delay)
                continue
            if errors:
                messages = [e.get("message", json.dumps(e)) for e in errors]
                return ServiceResult.failure(ErrorKind.GRAPHQL, "; ".join(messages))
            return ServiceResult.success(payload.get("data") or {})

    def _mutate(self, query: str, variables: Dict, root: str) -> ServiceResult[Dict]:
        result = self.execute(query, variables, retry_status=WRITE_RETRY_STATUS, retry_transport=False)
        if not result.ok:
            return result
        body = result.value.get(root) or {}
        errors = body.get("userErrors") or []
        if errors:
            return ServiceResult.failure(ErrorKind.VALIDATION, _format_user_errors(errors))
        return ServiceResult.success(body)

    # ----------------------------------------------------------------- reads

    def list_entries(
        self, page_size: int, cursor: Optional[str] = None
    ) -> ServiceResult[Tuple[List[CatalogEntry], Optional[str]]]:
        first = max(1, min(MAX_PAGE_SIZE, page_size))
        result = self.execute(PRODUCTS_PAGE, {"first": first, "after": cursor})
        if not result.ok:
            return result
        products = result.value.get("products") or {}
        try:
            entries = [CatalogEntry.from_node(node) for node in products.get("nodes") or []]
        except (KeyError, TypeError, ValueError) as exc:
            return ServiceResult.failure(ErrorKind.GRAPHQL, f"unexpected product payload: {exc}")
        page_info = products.get("pageInfo") or {}
        next_cursor = page_info.get("endCursor") if page_info.get("hasNextPage") else None
        return ServiceResult.success((entries, next_cursor))

    # ---------------------------------------------------------------- writes

    def update_entry(self, entry_id: str, fields: Dict[str, Any]) -> ServiceResult[Dict]:
        """Update product-level fields such as `title` or `status`."""
        return self._mutate(PRODUCT_UPDATE, {"input": {"id": entry_id, **fields}}, "productUpdate")

    def rename_option(self, entry_id: str, option_id: str, name: str) -> ServiceResult[Dict]:
        return self._mutate(
            OPTION_UPDATE,
            {"productId": entry_id, "option": {"id": option_id, "name": name}},
            "productOptionUpdate",
        )

    def create_variant(
        self,
        entry_id: str,
        option_name: str,
        option_value: str,
        price,
        compare_at_price=None,
        sku: str = "",
    ) -> ServiceResult[VariantRecord]:
        variant: Dict[str, Any] = {
            "optionValues": [{"optionName": option_name, "name": option_value}],
            "price": _money(price),
        }
        if compare_at_price is not None:
            variant["compareAtPrice"] = _money(compare_at_price)
        if sku:
            variant["inventoryItem"] = {"sku": sku}
        result = self._mutate(
            VARIANTS_BULK_CREATE,
            {"productId": entry_id, "variants": [variant]},
            "productVariantsBulkCreate",
        )
        return _first_variant(result)

    def update_variant_option_value(
        self, entry_id: str, variant_id: str, option_name: str, value: str
    ) -> ServiceResult[VariantRecord]:
        result = self._mutate(
            VARIANTS_BULK_UPDATE,
            {
                "productId": entry_id,
                "variants": [
                    {"id": variant_id, "optionValues": [{"optionName": option_name, "name": value}]}
                ],
            },
            "productVariantsBulkUpdate",
        )
        return _first_variant(result)


def _retry_after(header: Optional[str]) -> float:
    """Seconds to wait from a Retry-After header; at least 1, capped at 60."""
    try:
        seconds = float(header) if header else 1.0
    except ValueError:
        return 1.0
    if seconds != seconds:  # NaN
        return 1.0
    return min(60.0, max(1.0, seconds))


def _is_throttled(errors: List[Dict]) -> bool:
    for err in errors:
        extensions = err.get("extensions") if isinstance(err, dict) else None
        if isinstance(extensions, dict) and extensions.get("code") == "THROTTLED":
            return True
    return False


def _money(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return format_price(value)


def _format_user_errors(errors: List[Dict]) -> str:
    parts = []
    for err in errors:
        field = err.get("field")
        where = ".".join(str(f) for f in field) if isinstance(field, list) else (field or "")
        parts.append(f"{where}: {err.get('message', '')}" if where else err.get("message", ""))
    return "; ".join(parts)


def _first_variant(result: ServiceResult[Dict]) -> ServiceResult[VariantRecord]:
    if not result.ok:
        return result
    variants = result.value.get("productVariants") or []
    if not variants:
        return ServiceResult.failure(ErrorKind.GRAPHQL, "mutation returned no variants")
    return ServiceResult.success(VariantRecord.from_node(variants[0]))
