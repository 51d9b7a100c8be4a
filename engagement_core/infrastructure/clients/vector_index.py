"""
Vector Index Client
Pushes video search metadata to an HTTP metadata endpoint

Only metadata is sent; embeddings are produced elsewhere.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from engagement_core.app.config import VectorIndexSettings, get_config
from engagement_core.services.exceptions import TransientInfraError

logger = logging.getLogger(__name__)


class HttpVectorIndex:
    """
    Vector index adapter over httpx

    Usage:
        index = create_vector_index()
        if index:
            await index.upsert_metadata("v1", {"status": "active"})
    """

    def __init__(
        self,
        settings: VectorIndexSettings,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not settings.url:
            raise ValueError("Vector index URL is not configured")
        self.settings = settings
        headers = {"Content-Type": "application/json"}
        if settings.api_key:
            headers["Authorization"] = f"Bearer {settings.api_key}"
        self.client = client or httpx.AsyncClient(
            base_url=settings.url.rstrip("/"),
            headers=headers,
            timeout=settings.timeout_seconds,
        )

    async def upsert_metadata(self, video_id: str, metadata: Dict[str, Any]) -> None:
        """
        Replace the metadata stored for one video

        Raises:
            TransientInfraError: Network failure or 5xx/429 response
            httpx.HTTPStatusError: Other non-success responses
        """
        url = f"/namespaces/{self.settings.namespace}/vectors/{video_id}/metadata"
        try:
            response = await self.client.put(url, json={"metadata": metadata})
        except httpx.TransportError as e:
            raise TransientInfraError(f"Vector index unreachable: {e}") from e

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientInfraError(
                f"Vector index returned {response.status_code}",
                details={"video_id": video_id},
            )
        response.raise_for_status()
        logger.debug(f"Vector metadata updated: {video_id}")

    async def close(self) -> None:
        await self.client.aclose()


def create_vector_index() -> Optional[HttpVectorIndex]:
    """Adapter from configuration, or None when no endpoint is configured"""
    settings = get_config().vector_index
    if not settings.url:
        return None
    return HttpVectorIndex(settings)
