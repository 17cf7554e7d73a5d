from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from budget_api.errors import BudgetApiError
from budget_api.models import Account, Envelope, Goal

from .session import SessionState


class BudgetSnapshot(BaseModel):
    """
    Immutable view of everything presentation code may read.

    Fields
    - session: current session state.
    - is_loading: True while any operation is in flight.
    - last_error: most recent failure, or None.
    - accounts / envelopes / goals: collections in server order.

    Notes
    - A snapshot is detached from the live stores; take a new one after a
      change notification.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    session: SessionState = SessionState.SIGNED_OUT
    is_loading: bool = False
    last_error: Optional[BudgetApiError] = None
    accounts: List[Account] = Field(default_factory=list, description="Accounts in server order")
    envelopes: List[Envelope] = Field(default_factory=list, description="Envelopes in server order")
    goals: List[Goal] = Field(default_factory=list, description="Goals in server order")

    @property
    def error_message(self) -> Optional[str]:
        return self.last_error.message if self.last_error is not None else None

    @classmethod
    def empty(cls) -> "BudgetSnapshot":
        """Convenience constructor for a signed-out, empty snapshot."""
        return cls()
