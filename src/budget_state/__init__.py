"""
Session and state synchronization for the budgeting API.

The `BudgetClient` owns the session token, one `ResourceStore` per resource
type and the observable `BudgetState` projection that presentation code
reads. Operations report failures through `OperationResult` and the shared
`ClientStatus`; they do not raise.
"""

from .client import BudgetClient
from .models import BudgetSnapshot
from .session import SessionManager, SessionState
from .status import ClientStatus, Observable, OperationResult
from .store import ResourceStore
from .surface import BudgetState

__all__ = [
    "BudgetClient",
    "BudgetSnapshot",
    "BudgetState",
    "ClientStatus",
    "Observable",
    "OperationResult",
    "ResourceStore",
    "SessionManager",
    "SessionState",
]
