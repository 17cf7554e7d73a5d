from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from budget_api.codec import ACCOUNTS, ENVELOPES, GOALS
from budget_api.config import ApiConfig
from budget_api.models import Account, Envelope, Goal
from budget_api.transport import BudgetApiTransport

from .session import SessionManager
from .status import ClientStatus, OperationResult
from .store import ResourceStore
from .surface import BudgetState


logger = logging.getLogger(__name__)


class BudgetClient:
    """
    Authenticated budgeting client: session, three resource stores and the
    observable state presentation code binds to.

    Usage
    - Feed identity-provider events to `identity_changed(id_token)`; pass
      None when the provider signs the user out.
    - After a successful exchange every collection is loaded.
    - Mutate through `accounts`, `envelopes` and `goals`; read through `state`.
    - `aclose()` tears the client down; responses still in flight are
      discarded instead of being applied.

    Operations are not safe to call from multiple event loops.
    """

    def __init__(self, transport: BudgetApiTransport) -> None:
        self._transport = transport
        self._status = ClientStatus()
        self._session = SessionManager(transport, self._status)
        self._accounts: ResourceStore[Account] = ResourceStore(
            ACCOUNTS, transport, self._token, self._status
        )
        self._envelopes: ResourceStore[Envelope] = ResourceStore(
            ENVELOPES, transport, self._token, self._status
        )
        self._goals: ResourceStore[Goal] = ResourceStore(GOALS, transport, self._token, self._status)
        self._state = BudgetState(
            self._session, self._status, self._accounts, self._envelopes, self._goals
        )
        self._session.on_signed_in(self.load_all)
        self._session.on_signed_out(self._clear_stores)
        self._closed = False

    # -------- Construction helpers --------
    @classmethod
    def from_config(
        cls, config: ApiConfig, *, client: Optional[httpx.AsyncClient] = None
    ) -> "BudgetClient":
        return cls(BudgetApiTransport.from_config(config, client=client))

    @classmethod
    def from_env(
        cls, *, client: Optional[httpx.AsyncClient] = None, configure_logging: bool = True
    ) -> "BudgetClient":
        """Build from `BUDGET_*` environment variables and, by default, set up logging."""
        config = ApiConfig.from_env()
        if configure_logging:
            config.configure_logging()
        return cls.from_config(config, client=client)

    # -------- Accessors --------
    @property
    def session(self) -> SessionManager:
        return self._session

    @property
    def status(self) -> ClientStatus:
        return self._status

    @property
    def state(self) -> BudgetState:
        return self._state

    @property
    def accounts(self) -> ResourceStore[Account]:
        return self._accounts

    @property
    def envelopes(self) -> ResourceStore[Envelope]:
        return self._envelopes

    @property
    def goals(self) -> ResourceStore[Goal]:
        return self._goals

    @property
    def closed(self) -> bool:
        return self._closed

    # -------- Operations --------
    async def identity_changed(self, id_token: Optional[str]) -> OperationResult[str]:
        return await self._session.identity_changed(id_token)

    def sign_out(self) -> None:
        self._session.sign_out()

    async def load_all(self) -> Dict[str, OperationResult[Any]]:
        """Load the three collections concurrently; results keyed by store name."""
        stores = (self._accounts, self._envelopes, self._goals)
        # One in-flight slot spans the batch; errors from any store stay visible
        self._status.begin()
        try:
            results = await asyncio.gather(*(store.load() for store in stores))
        finally:
            self._status.finish()
        return {store.name: result for store, result in zip(stores, results)}

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._session.close()
        for store in (self._accounts, self._envelopes, self._goals):
            store.close()
        self._state.detach()
        await self._transport.aclose()
        logger.debug("Budget client closed")

    async def __aenter__(self) -> "BudgetClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # -------- Internal --------
    def _token(self) -> Optional[str]:
        return self._session.token

    def _clear_stores(self) -> None:
        for store in (self._accounts, self._envelopes, self._goals):
            store.clear()


__all__ = ["BudgetClient"]
