"""Shared settings for cashier backend HTTP clients"""

import httpx
from typing import Dict

from cashier_workflow.config import settings
from cashier_workflow.domain.models import TransactionKind


class CashierAPIClient:
    """Base for clients talking to the /api/{kind}/... endpoints"""

    def __init__(
        self,
        kind: TransactionKind,
        base_url: str | None = None,
        timeout: float | None = None,
        api_token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.kind = kind
        self.base_url = (base_url or settings.cashier_api_base).rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds
        self.api_token = api_token if api_token is not None else settings.cashier_api_token
        self.transport = transport

    def endpoint(self, path: str) -> str:
        return f"{self.base_url}/api/{self.kind.value}/{path}"

    def headers(self) -> Dict[str, str]:
        if self.api_token:
            return {"Authorization": f"Bearer {self.api_token}"}
        return {}

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, headers=self.headers(), transport=self.transport)
