import asyncio
import json

import httpx
import pytest

from listing_intake.errors import CommerceAPIError
from listing_intake.services.commerce_client import CommerceClient

PRODUCT = {
    "title": "Maria B 3-piece - M",
    "description": "Lawn suit, worn once",
    "designer": "Maria B",
    "pieces_included": "3-piece",
    "size": "M",
    "condition": "Like new",
    "price": "85.00",
}


def _client(handler):
    return CommerceClient("test-shop.myshopify.com", "shpat_test", transport=httpx.MockTransport(handler))


class TestExecute:
    def test_returns_data_and_sends_token(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"data": {"shop": {"name": "Test"}}})

        data = asyncio.run(_client(handler).execute("{ shop { name } }"))

        assert data == {"shop": {"name": "Test"}}
        assert seen[0].headers["X-Shopify-Access-Token"] == "shpat_test"
        assert seen[0].url.path == "/admin/api/2024-01/graphql.json"

    def test_http_error_status(self):
        with pytest.raises(CommerceAPIError, match="401"):
            asyncio.run(_client(lambda request: httpx.Response(401, text="Unauthorized")).execute("{}"))

    def test_graphql_errors(self):
        def handler(request):
            return httpx.Response(200, json={"errors": [{"message": "Throttled"}]})

        with pytest.raises(CommerceAPIError, match="Throttled"):
            asyncio.run(_client(handler).execute("{}"))

    def test_invalid_json(self):
        with pytest.raises(CommerceAPIError, match="invalid JSON"):
            asyncio.run(_client(lambda request: httpx.Response(200, text="<html>")).execute("{}"))

    def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(CommerceAPIError, match="unreachable"):
            asyncio.run(_client(handler).execute("{}"))


class TestCreateProduct:
    def test_creates_draft_with_media(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            product = {"id": "gid://shopify/Product/987654", "title": PRODUCT["title"], "status": "DRAFT"}
            return httpx.Response(200, json={"data": {"productCreate": {"product": product, "userErrors": []}}})

        product_id = asyncio.run(_client(handler).create_product(PRODUCT, ["gid://shopify/MediaImage/1"]))

        assert product_id == "987654"
        variables = bodies[0]["variables"]
        assert variables["input"]["status"] == "DRAFT"
        assert variables["input"]["vendor"] == "Maria B"
        assert variables["input"]["variants"][0]["price"] == "85.00"
        assert variables["media"] == [{"originalSource": "gid://shopify/MediaImage/1", "mediaContentType": "IMAGE"}]

    def test_user_errors(self):
        def handler(request):
            payload = {"productCreate": {"product": None, "userErrors": [{"field": ["title"], "message": "blank"}]}}
            return httpx.Response(200, json={"data": payload})

        with pytest.raises(CommerceAPIError, match="blank"):
            asyncio.run(_client(handler).create_product(PRODUCT, []))
