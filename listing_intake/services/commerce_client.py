"""Shopify Admin GraphQL client for the commerce backend."""

from typing import Any, Optional

import httpx

from listing_intake.errors import CommerceAPIError
from listing_intake.logging_config import get_logger

logger = get_logger("commerce_client")

STAGED_UPLOADS_CREATE = """
mutation stagedUploadsCreate($input: [StagedUploadInput!]!) {
  stagedUploadsCreate(input: $input) {
    stagedTargets { url resourceUrl parameters { name value } }
    userErrors { field message }
  }
}
"""

FILE_CREATE = """
mutation fileCreate($files: [FileCreateInput!]!) {
  fileCreate(files: $files) {
    files { id fileStatus alt }
    userErrors { field message }
  }
}
"""

FILE_STATUS = """
query fileStatus($id: ID!) {
  node(id: $id) {
    ... on MediaImage { id fileStatus image { url } }
  }
}
"""

FILE_DELETE = """
mutation fileDelete($fileIds: [ID!]!) {
  fileDelete(fileIds: $fileIds) {
    deletedFileIds
    userErrors { field message }
  }
}
"""

PRODUCT_CREATE = """
mutation productCreate($input: ProductInput!, $media: [CreateMediaInput!]) {
  productCreate(input: $input, media: $media) {
    product { id title handle status }
    userErrors { field message }
  }
}
"""


class CommerceClient:
    def __init__(
        self,
        store_domain: str,
        access_token: str,
        api_version: str = "2024-01",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store_domain = store_domain
        self.access_token = access_token
        self.endpoint = f"https://{store_domain}/admin/api/{api_version}/graphql.json"
        self.timeout = timeout
        self.transport = transport

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def execute(self, query: str, variables: Optional[dict] = None) -> dict[str, Any]:
        """Run a query or mutation and return its ``data`` object."""
        try:
            async with self.http_client() as client:
                response = await client.post(
                    self.endpoint,
                    json={"query": query, "variables": variables or {}},
                    headers={
                        "Content-Type": "application/json",
                        "X-Shopify-Access-Token": self.access_token,
                    },
                )
        except httpx.HTTPError as exc:
            raise CommerceAPIError(f"Commerce API unreachable: {exc}") from exc

        if response.status_code >= 400:
            raise CommerceAPIError(f"Commerce API error: {response.status_code} - {response.text[:200]}")

        try:
            result = response.json()
        except ValueError as exc:
            raise CommerceAPIError("Commerce API returned invalid JSON") from exc

        if result.get("errors"):
            first = result["errors"][0]
            message = first.get("message") if isinstance(first, dict) else str(first)
            logger.error("Commerce GraphQL errors", extra={"context": {"errors": result["errors"]}})
            raise CommerceAPIError(f"Commerce GraphQL error: {message}")

        data = result.get("data")
        if not data:
            raise CommerceAPIError("Commerce API returned no data")
        return data

    async def create_product(self, product: dict[str, Any], file_ids: list[str]) -> str:
        """Create a DRAFT product with the given media and return its numeric id."""
        variables = {
            "input": {
                "title": product["title"],
                "descriptionHtml": product.get("description") or "",
                "vendor": product.get("designer") or "",
                "productType": product.get("pieces_included") or "",
                "status": "DRAFT",
                "variants": [
                    {
                        "price": product.get("price") or "0",
                        "inventoryPolicy": "DENY",
                        "inventoryManagement": "SHOPIFY",
                    }
                ],
                "metafields": [
                    {
                        "namespace": "custom",
                        "key": "size",
                        "value": product.get("size") or "",
                        "type": "single_line_text_field",
                    },
                    {
                        "namespace": "custom",
                        "key": "condition",
                        "value": product.get("condition") or "",
                        "type": "single_line_text_field",
                    },
                ],
            },
            "media": [{"originalSource": file_id, "mediaContentType": "IMAGE"} for file_id in file_ids],
        }

        data = await self.execute(PRODUCT_CREATE, variables)
        payload = data.get("productCreate") or {}
        user_errors = payload.get("userErrors") or []
        if user_errors:
            raise CommerceAPIError(f"Product create error: {user_errors[0].get('message')}")

        product_gid = (payload.get("product") or {}).get("id")
        if not product_gid:
            raise CommerceAPIError("Product create returned no product id")
        product_id = product_gid.rsplit("/", 1)[-1]
        logger.info(f"Product created: {product_id}", extra={"context": {"media_count": len(file_ids)}})
        return product_id
