from __future__ import annotations

from typing import Any, Callable, List, Optional

from budget_api.errors import BudgetApiError
from budget_api.models import Account, Envelope, Goal

from .models import BudgetSnapshot
from .session import SessionManager, SessionState
from .status import ClientStatus, Observable
from .store import ResourceStore


class BudgetState(Observable):
    """
    Read-only projection of session, status and the three stores.

    Subscribers are told about every change in any of the sources; they
    receive this object and read the current values (or a `snapshot()`).
    """

    def __init__(
        self,
        session: SessionManager,
        status: ClientStatus,
        accounts: ResourceStore[Account],
        envelopes: ResourceStore[Envelope],
        goals: ResourceStore[Goal],
    ) -> None:
        super().__init__()
        self._session = session
        self._status = status
        self._accounts = accounts
        self._envelopes = envelopes
        self._goals = goals
        self._unsubscribers: List[Callable[[], None]] = [
            source.subscribe(self._forward)
            for source in (session, status, accounts, envelopes, goals)
        ]

    @property
    def session(self) -> SessionState:
        return self._session.state

    @property
    def is_loading(self) -> bool:
        return self._status.is_loading

    @property
    def last_error(self) -> Optional[BudgetApiError]:
        return self._status.last_error

    @property
    def accounts(self) -> List[Account]:
        return self._accounts.items

    @property
    def envelopes(self) -> List[Envelope]:
        return self._envelopes.items

    @property
    def goals(self) -> List[Goal]:
        return self._goals.items

    def snapshot(self) -> BudgetSnapshot:
        return BudgetSnapshot(
            session=self.session,
            is_loading=self.is_loading,
            last_error=self.last_error,
            accounts=self.accounts,
            envelopes=self.envelopes,
            goals=self.goals,
        )

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def _forward(self, _source: Any) -> None:
        self._notify()


__all__ = ["BudgetState"]
