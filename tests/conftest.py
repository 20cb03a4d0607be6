"""Shared fixtures: catalog entry builders and an in-memory Catalog Service."""
from decimal import Decimal

import pytest

from catalog_consolidation.models import (
    CatalogEntry,
    ProductOption,
    ServiceResult,
    VariantRecord,
)


def make_entry(
    num,
    title,
    price="24.99",
    vendor="VetriScience",
    status="ACTIVE",
    product_type="Supplements",
    option_name="Title",
    variants=None,
    compare_at=None,
    sku=None,
    inventory=5,
):
    """Build a CatalogEntry. `variants` is a list of (price, option value) pairs."""
    if variants is None:
        variants = [(price, "Default Title")]
    records = []
    for i, (v_price, value) in enumerate(variants):
        records.append(VariantRecord(
            id=f"gid://shopify/ProductVariant/{num}{i:02d}",
            title=value,
            sku=sku if sku is not None else f"SKU-{num}-{i}",
            price=Decimal(v_price) if v_price is not None else None,
            compare_at_price=Decimal(compare_at) if compare_at else None,
            inventory_quantity=inventory,
            option_values=(value,),
        ))
    return CatalogEntry(
        id=f"gid://shopify/Product/{num}",
        title=title,
        handle=title.lower().replace(" ", "-"),
        vendor=vendor,
        product_type=product_type,
        status=status,
        total_inventory=inventory * max(1, len(records)),
        variants=tuple(records),
        options=(ProductOption(
            id=f"gid://shopify/ProductOption/{num}",
            name=option_name,
            values=tuple(v for _, v in variants),
        ),),
    )


class FakeCatalogClient:
    """Records every call; `failures[method]` may return a ServiceResult to override success."""

    def __init__(self, entries=(), pages=None):
        self.pages = pages if pages is not None else [list(entries)]
        self.calls = []
        self.failures = {}
        self.list_failures = {}
        self.on_call = None

    def list_entries(self, page_size, cursor=None):
        self.calls.append(("list_entries", page_size, cursor))
        index = int(cursor) if cursor else 0
        if index in self.list_failures:
            return self.list_failures[index]
        next_cursor = str(index + 1) if index + 1 < len(self.pages) else None
        return ServiceResult.success((list(self.pages[index]), next_cursor))

    def _write(self, method, *args):
        self.calls.append((method,) + args)
        if self.on_call:
            self.on_call(method, *args)
        hook = self.failures.get(method)
        if hook:
            result = hook(*args)
            if result is not None:
                return result
        return ServiceResult.success({"ok": True})

    def update_entry(self, entry_id, fields):
        return self._write("update_entry", entry_id, fields)

    def rename_option(self, entry_id, option_id, name):
        return self._write("rename_option", entry_id, option_id, name)

    def create_variant(self, entry_id, option_name, option_value, price, compare_at_price=None, sku=""):
        return self._write("create_variant", entry_id, option_name, option_value, price, compare_at_price, sku)

    def update_variant_option_value(self, entry_id, variant_id, option_name, value):
        return self._write("update_variant_option_value", entry_id, variant_id, option_name, value)

    @property
    def write_calls(self):
        return [c for c in self.calls if c[0] != "list_entries"]


@pytest.fixture
def glycoflex_entries():
    return [
        make_entry(101, "GlycoFlex 60 Count", price="24.99"),
        make_entry(102, "GlycoFlex 120 Count", price="39.99", compare_at="44.99", sku="GF-120"),
    ]


@pytest.fixture
def fake_client():
    return FakeCatalogClient()
