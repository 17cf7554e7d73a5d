from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Union

import httpx
from pydantic import BaseModel

from .codec import decode_model, dumps
from .config import DEFAULT_BASE_URL, DEFAULT_TIMEOUT, ApiConfig
from .errors import BudgetApiError, ErrorKind
from .models import TokenRequest, TokenResponse


logger = logging.getLogger(__name__)

TOKEN_PATH = "authentication/token"

Body = Union[BaseModel, Mapping[str, Any]]


def _dump_body(body: Body) -> bytes:
    try:
        return dumps(body).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise BudgetApiError(
            ErrorKind.INVALID_REQUEST, detail=f"body is not JSON-encodable: {exc}"
        ) from exc


class BudgetApiTransport:
    """
    Minimal async transport for the budgeting API.

    Notes
    - Every request carries `Content-Type: application/json`; authenticated
      requests add `Authorization: Bearer <token>`.
    - Failures are raised as `BudgetApiError` with exactly one `ErrorKind`:
      unreachable/timeout/protocol errors -> REQUEST_FAILED, 401 -> UNAUTHORIZED,
      other 4xx/5xx -> SERVER_ERROR(status), unparsable 2xx body -> DECODING_FAILED.
    - No retries; the caller decides whether to repeat an action.
    - Amounts travel as JSON numbers: request bodies write `Decimal` values
      unquoted and responses parse numbers as `Decimal`, never via float.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self._timeout)

    @classmethod
    def from_config(
        cls, config: ApiConfig, *, client: Optional[httpx.AsyncClient] = None
    ) -> "BudgetApiTransport":
        return cls(config.base_url, timeout=config.timeout, client=client)

    @property
    def base_url(self) -> str:
        return self._base_url

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "BudgetApiTransport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # --------------- Public API ---------------
    async def send(
        self,
        path: str,
        method: str = "GET",
        body: Optional[Body] = None,
        *,
        bearer_token: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        """
        Issue one request and return the decoded JSON payload.

        An empty 2xx body decodes as `{}` (delete endpoints reply with nothing).
        Raises BudgetApiError on any failure.
        """
        url = self.build_url(path)
        req_headers: Dict[str, str] = {"Content-Type": "application/json"}
        if bearer_token:
            req_headers["Authorization"] = f"Bearer {bearer_token}"
        if headers:
            req_headers.update(headers)
        content = _dump_body(body) if body is not None else None

        logger.debug("%s %s", method, url.path)
        try:
            resp = await self._client.request(method, url, content=content, headers=req_headers)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise BudgetApiError(
                ErrorKind.REQUEST_FAILED, detail=str(exc) or type(exc).__name__
            ) from exc
        except httpx.DecodingError as exc:
            # Body could not be decoded per its Content-Encoding
            raise BudgetApiError(ErrorKind.INVALID_RESPONSE, detail=str(exc)) from exc
        except httpx.HTTPError as exc:
            raise BudgetApiError(ErrorKind.UNKNOWN, detail=str(exc)) from exc

        return self._classify(resp)

    async def get(self, path: str, *, bearer_token: Optional[str] = None) -> Any:
        return await self.send(path, "GET", bearer_token=bearer_token)

    async def post(
        self, path: str, body: Body, *, bearer_token: Optional[str] = None
    ) -> Any:
        return await self.send(path, "POST", body, bearer_token=bearer_token)

    async def exchange_token(self, id_token: str) -> str:
        """Trade an identity-provider assertion for an application session token."""
        payload = await self.post(TOKEN_PATH, TokenRequest(id_token=id_token))
        return decode_model(TokenResponse, payload).token

    # --------------- Internal ---------------
    def build_url(self, path: str) -> httpx.URL:
        raw = f"{self._base_url}/{path.lstrip('/')}"
        try:
            url = httpx.URL(raw)
        except httpx.InvalidURL as exc:
            raise BudgetApiError(ErrorKind.INVALID_URL, detail=str(exc)) from exc
        if url.scheme not in ("http", "https") or not url.host:
            raise BudgetApiError(ErrorKind.INVALID_URL, detail=raw)
        return url

    @staticmethod
    def _classify(resp: httpx.Response) -> Any:
        status = resp.status_code
        if 200 <= status < 300:
            return BudgetApiTransport._decode_body(resp)
        if status == 401:
            raise BudgetApiError(ErrorKind.UNAUTHORIZED)
        if 400 <= status <= 599:
            raise BudgetApiError.server_error(status)
        raise BudgetApiError(ErrorKind.UNKNOWN, detail=f"unexpected HTTP status {status}")

    @staticmethod
    def _decode_body(resp: httpx.Response) -> Any:
        content = resp.content
        if not content.strip():
            return {}
        try:
            return json.loads(content, parse_float=Decimal)
        except ValueError as exc:  # JSONDecodeError and UnicodeDecodeError
            raise BudgetApiError(
                ErrorKind.DECODING_FAILED, detail=f"response is not valid JSON: {exc}"
            ) from exc


__all__ = ["BudgetApiTransport", "TOKEN_PATH"]
