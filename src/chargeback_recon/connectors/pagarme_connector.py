import logging
from typing import Any, Dict, Optional

import httpx

from .base import DisputeGateway, GatewaySubmissionError

logger = logging.getLogger(__name__)


class PagarmeGateway(DisputeGateway):
    """
    Pagar.me v5 gateway client for defense hand-off. Authenticates with HTTP
    basic auth using the secret key as the username, as the v5 API expects.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.pagar.me/core/v5",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ValueError("api_key is required")
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            auth=(api_key, ""),
            timeout=timeout,
            transport=transport,
        )

    async def submit_defense(
        self,
        dispute_id: str,
        evidence: bytes,
        document_type: str = "document",
    ) -> Dict[str, Any]:
        files = {"file": (f"defense_{dispute_id}.md", evidence, "text/markdown")}
        try:
            response = await self._client.post(
                f"/chargebacks/{dispute_id}/documents",
                data={"type": document_type},
                files=files,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Pagar.me rejected defense for {dispute_id}: HTTP {e.response.status_code}"
            )
            raise GatewaySubmissionError(
                f"Pagar.me returned HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Pagar.me defense submission for {dispute_id} failed: {e}")
            raise GatewaySubmissionError(f"Pagar.me request failed: {e}") from e

        try:
            return response.json()
        except ValueError:
            return {"status_code": response.status_code, "body": response.text}

    async def aclose(self) -> None:
        await self._client.aclose()
