"""
Tests for the Admin GraphQL client, using a stub HTTP session.
"""
import requests

from catalog_consolidation.client import CatalogServiceClient
from catalog_consolidation.models import ErrorKind


class StubResponse:
    def __init__(self, status_code=200, payload=None, headers=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.headers = headers or {}
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no body")
        return self._payload


class StubSession:
    def __init__(self, responses):
        self.headers = {}
        self.responses = list(responses)
        self.posts = []

    def post(self, url, json=None, timeout=None):
        self.posts.append((url, json))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_client(responses, max_attempts=3):
    session = StubSession(responses)
    sleeps = []
    client = CatalogServiceClient(
        "store.myshopify.com",
        "shpat_test",
        api_version="2025-01",
        max_attempts=max_attempts,
        session=session,
        sleep=sleeps.append,
    )
    return client, session, sleeps


PRODUCT_NODE = {
    "id": "gid://shopify/Product/1",
    "title": "GlycoFlex 60 Count",
    "handle": "glycoflex-60-count",
    "vendor": "VetriScience",
    "productType": "Supplements",
    "status": "ACTIVE",
    "totalInventory": 7,
    "options": [{"id": "gid://shopify/ProductOption/1", "name": "Title", "values": ["Default Title"]}],
    "featuredImage": {"url": "https://cdn/a.jpg"},
    "images": {"nodes": [{"url": "https://cdn/a.jpg"}, {"url": "https://cdn/b.jpg"}]},
    "variants": {"nodes": [{
        "id": "gid://shopify/ProductVariant/11",
        "title": "Default Title",
        "sku": "GF-60",
        "price": "24.99",
        "compareAtPrice": None,
        "inventoryQuantity": 7,
        "selectedOptions": [{"name": "Title", "value": "Default Title"}],
    }]},
}


class TestReads:

    def test_list_entries_parses_page(self):
        payload = {"data": {"products": {
            "nodes": [PRODUCT_NODE],
            "pageInfo": {"hasNextPage": True, "endCursor": "abc"},
        }}}
        client, session, _ = make_client([StubResponse(payload=payload)])
        result = client.list_entries(500)

        assert result.ok
        entries, cursor = result.value
        assert cursor == "abc"
        entry = entries[0]
        assert entry.title == "GlycoFlex 60 Count"
        assert str(entry.min_price) == "24.99"
        assert entry.images == ("https://cdn/a.jpg", "https://cdn/b.jpg")
        assert entry.first_option.name == "Title"
        assert session.posts[0][0] == "https://store.myshopify.com/admin/api/2025-01/graphql.json"
        assert session.posts[0][1]["variables"] == {"first": 250, "after": None}
        assert session.headers["X-Shopify-Access-Token"] == "shpat_test"

    def test_last_page_has_no_cursor(self):
        payload = {"data": {"products": {
            "nodes": [],
            "pageInfo": {"hasNextPage": False, "endCursor": "zzz"},
        }}}
        client, _, _ = make_client([StubResponse(payload=payload)])
        assert client.list_entries(50).value == ([], None)

    def test_read_retries_throttling(self):
        ok = StubResponse(payload={"data": {"products": {"nodes": [], "pageInfo": {}}}})
        client, session, sleeps = make_client([
            StubResponse(status_code=429, headers={"Retry-After": "2"}),
            ok,
        ])
        assert client.list_entries(50).ok
        assert len(session.posts) == 2
        assert sleeps == [2]

    def test_read_gives_up_after_budget(self):
        client, session, _ = make_client([
            requests.ConnectionError("down"),
            requests.ConnectionError("down"),
            requests.ConnectionError("down"),
        ])
        result = client.list_entries(50)
        assert not result.ok
        assert result.error_kind == ErrorKind.TRANSPORT
        assert len(session.posts) == 3

    def test_top_level_errors(self):
        client, _, _ = make_client([StubResponse(payload={"errors": [{"message": "Access denied"}]})])
        result = client.list_entries(50)
        assert result.error_kind == ErrorKind.GRAPHQL
        assert "Access denied" in result.detail

    def test_fractional_retry_after(self):
        ok = StubResponse(payload={"data": {"products": {"nodes": [], "pageInfo": {}}}})
        client, session, sleeps = make_client([
            StubResponse(status_code=429, headers={"Retry-After": "2.0"}),
            ok,
        ])
        result = client.list_entries(50)
        assert result.ok
        assert sleeps == [2.0]
        assert len(session.posts) == 2

    def test_unparseable_retry_after_waits_one_second(self):
        ok = StubResponse(payload={"data": {"products": {"nodes": [], "pageInfo": {}}}})
        client, _, sleeps = make_client([
            StubResponse(status_code=503, headers={"Retry-After": "Wed, 21 Oct 2026 07:28:00 GMT"}),
            ok,
        ])
        assert client.list_entries(50).ok
        assert sleeps == [1.0]

    def test_throttled_error_code_is_retried(self):
        throttled = {"errors": [{"message": "Throttled", "extensions": {"code": "THROTTLED"}}]}
        ok = StubResponse(payload={"data": {"products": {"nodes": [], "pageInfo": {}}}})
        client, session, sleeps = make_client([StubResponse(payload=throttled), ok])
        result = client.list_entries(50)
        assert result.ok
        assert len(session.posts) == 2
        assert len(sleeps) == 1

    def test_throttled_until_budget_runs_out(self):
        throttled = {"errors": [{"message": "Throttled", "extensions": {"code": "THROTTLED"}}]}
        client, session, _ = make_client([StubResponse(payload=throttled) for _ in range(3)])
        result = client.list_entries(50)
        assert result.error_kind == ErrorKind.GRAPHQL
        assert result.detail == "Throttled"
        assert len(session.posts) == 3


class TestWrites:

    def test_user_errors_are_validation_failures(self):
        payload = {"data": {"productUpdate": {
            "product": None,
            "userErrors": [{"field": ["title"], "message": "can't be blank"}],
        }}}
        client, _, _ = make_client([StubResponse(payload=payload)])
        result = client.update_entry("gid://shopify/Product/1", {"title": ""})
        assert result.error_kind == ErrorKind.VALIDATION
        assert result.detail == "title: can't be blank"

    def test_server_error_on_write_is_not_retried(self):
        client, session, _ = make_client([StubResponse(status_code=502, text="Bad gateway")])
        result = client.update_entry("gid://shopify/Product/1", {"status": "ARCHIVED"})
        assert result.error_kind == ErrorKind.TRANSPORT
        assert "502" in result.detail
        assert len(session.posts) == 1

    def test_transport_exception_on_write_is_not_retried(self):
        client, session, _ = make_client([requests.Timeout("slow")])
        result = client.rename_option("gid://shopify/Product/1", "gid://shopify/ProductOption/1", "Count")
        assert result.error_kind == ErrorKind.TRANSPORT
        assert len(session.posts) == 1

    def test_create_variant_payload(self):
        payload = {"data": {"productVariantsBulkCreate": {
            "productVariants": [{
                "id": "gid://shopify/ProductVariant/99",
                "title": "120 Count",
                "sku": "GF-120",
                "price": "39.99",
                "compareAtPrice": "44.99",
                "inventoryQuantity": 0,
                "selectedOptions": [{"name": "Count", "value": "120 Count"}],
            }],
            "userErrors": [],
        }}}
        client, session, _ = make_client([StubResponse(payload=payload)])
        result = client.create_variant(
            "gid://shopify/Product/1", "Count", "120 Count", "39.99", "44.99", "GF-120"
        )
        assert result.ok
        assert result.value.option_values == ("120 Count",)
        variables = session.posts[0][1]["variables"]
        assert variables["productId"] == "gid://shopify/Product/1"
        assert variables["variants"] == [{
            "optionValues": [{"optionName": "Count", "name": "120 Count"}],
            "price": "39.99",
            "compareAtPrice": "44.99",
            "inventoryItem": {"sku": "GF-120"},
        }]

    def test_update_variant_option_value(self):
        payload = {"data": {"productVariantsBulkUpdate": {
            "productVariants": [{"id": "gid://shopify/ProductVariant/11", "selectedOptions": []}],
            "userErrors": [],
        }}}
        client, session, _ = make_client([StubResponse(payload=payload)])
        result = client.update_variant_option_value(
            "gid://shopify/Product/1", "gid://shopify/ProductVariant/11", "Count", "60 Count"
        )
        assert result.ok
        assert session.posts[0][1]["variables"]["variants"][0]["optionValues"] == [
            {"optionName": "Count", "name": "60 Count"}
        ]

    def test_throttled_write_is_retried(self):
        throttled = {"errors": [{"message": "Throttled", "extensions": {"code": "THROTTLED"}}]}
        done = {"data": {"productUpdate": {"product": {"id": "gid://shopify/Product/1"}, "userErrors": []}}}
        client, session, _ = make_client([StubResponse(payload=throttled), StubResponse(payload=done)])
        result = client.update_entry("gid://shopify/Product/1", {"status": "ARCHIVED"})
        assert result.ok
        assert len(session.posts) == 2
