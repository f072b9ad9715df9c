import httpx
from datetime import datetime
from pydantic import ValidationError
from typing import List, Optional

from app.models.letter import CamelModel, LetterView, LetterPreview
from .errors import GatewayError, LetterNotFound


class PreCheckResult(CamelModel):
    can_resend: bool
    last_sent_at: Optional[datetime] = None


class UnlockGatewayClient:
    """HTTP client for the unlock endpoints and the public listing."""

    def __init__(self, base_url: str = "", http_client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        self._client = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._owns_client = http_client is None

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

    async def precheck(self, phone: str) -> PreCheckResult:
        body = await self._request("POST", "/precheck", json={"phone": phone})
        try:
            return PreCheckResult.model_validate(body)
        except ValidationError as e:
            raise GatewayError(f"Unexpected /precheck response: {e.error_count()} invalid field(s)") from e

    async def postcheck(self, phone: str, id_token: Optional[str] = None) -> LetterView:
        payload = {"phone": phone}
        if id_token:
            payload["idToken"] = id_token
        body = await self._request("POST", "/postcheck", json=payload)
        try:
            return LetterView.model_validate(body["user"])
        except (KeyError, ValidationError) as e:
            raise GatewayError("Unexpected /postcheck response") from e

    async def list_public(self) -> List[LetterPreview]:
        body = await self._request("GET", "/letters/public")
        try:
            return [LetterPreview.model_validate(item) for item in body.get("letters", [])]
        except (TypeError, ValidationError) as e:
            raise GatewayError("Unexpected /letters/public response") from e

    async def _request(self, method: str, url: str, **kwargs) -> dict:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise GatewayError(f"Request to {url} failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            if response.status_code < 400:
                raise GatewayError(f"Response from {url} is not a JSON object", status_code=response.status_code)
            body = {}

        if response.status_code == 404:
            raise LetterNotFound(body.get("error", "Not found"), status_code=404)
        if response.status_code >= 400:
            raise GatewayError(body.get("error", "Request failed"), status_code=response.status_code)
        return body
