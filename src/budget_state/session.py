from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

from budget_api.errors import BudgetApiError, ErrorKind
from budget_api.transport import BudgetApiTransport

from .status import ClientStatus, Observable, OperationResult


logger = logging.getLogger(__name__)

SignedInListener = Callable[[], Awaitable[Any]]
SignedOutListener = Callable[[], None]


class SessionState(str, Enum):
    SIGNED_OUT = "signed_out"
    EXCHANGING = "exchanging"
    SIGNED_IN = "signed_in"


def _remover(items: list, item: Any) -> Callable[[], None]:
    def remove() -> None:
        try:
            items.remove(item)
        except ValueError:
            pass

    return remove


class SessionManager(Observable):
    """
    Owns the application session token.

    State machine
    - SIGNED_OUT --assertion--> EXCHANGING (POST authentication/token)
    - EXCHANGING --ok--> SIGNED_IN, then every signed-in listener is awaited
      (the stores' initial load).
    - EXCHANGING --failure--> SIGNED_OUT with the failure recorded on the
      shared status.
    - any --assertion absent--> SIGNED_OUT: token dropped, signed-out listeners
      run (stores clear their collections), last error cleared.

    A new assertion is ignored while EXCHANGING or SIGNED_IN; sign out first
    to switch identities. An exchange that completes after a sign-out (or
    after `close()`) is discarded.
    """

    def __init__(self, transport: BudgetApiTransport, status: ClientStatus) -> None:
        super().__init__()
        self._transport = transport
        self._status = status
        self._state = SessionState.SIGNED_OUT
        self._token: Optional[str] = None
        self._generation = 0
        self._closed = False
        self._signed_in_listeners: List[SignedInListener] = []
        self._signed_out_listeners: List[SignedOutListener] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def is_authenticated(self) -> bool:
        return self._state is SessionState.SIGNED_IN and self._token is not None

    def on_signed_in(self, listener: SignedInListener) -> Callable[[], None]:
        self._signed_in_listeners.append(listener)
        return _remover(self._signed_in_listeners, listener)

    def on_signed_out(self, listener: SignedOutListener) -> Callable[[], None]:
        self._signed_out_listeners.append(listener)
        return _remover(self._signed_out_listeners, listener)

    # --------------- Public API ---------------
    async def identity_changed(self, id_token: Optional[str]) -> OperationResult[str]:
        """
        Feed the latest identity-provider assertion (None when signed out).

        Returns the exchanged token on success. Ignored events return an
        empty successful result.
        """
        if self._closed:
            return OperationResult.failure(
                BudgetApiError(ErrorKind.UNKNOWN, detail="session manager is closed")
            )
        if not id_token:
            self.sign_out()
            return OperationResult.success(None)
        if self._state is not SessionState.SIGNED_OUT:
            logger.debug("Identity assertion ignored while %s", self._state.value)
            return OperationResult.success(None)
        return await self._exchange(id_token)

    def sign_out(self) -> None:
        self._generation += 1
        self._token = None
        self._set_state(SessionState.SIGNED_OUT)
        for listener in list(self._signed_out_listeners):
            try:
                listener()
            except Exception:
                logger.exception("Signed-out listener %r failed", listener)
        self._status.clear_error()

    def close(self) -> None:
        """Detach from the owner; any exchange still in flight is discarded."""
        self._closed = True
        self._generation += 1

    # --------------- Internal ---------------
    async def _exchange(self, id_token: str) -> OperationResult[str]:
        generation = self._generation
        self._set_state(SessionState.EXCHANGING)
        self._status.begin()
        outcome: Optional[BudgetApiError] = None
        signed_in = False
        try:
            token = await self._transport.exchange_token(id_token)
        except BudgetApiError as err:
            if generation == self._generation:
                logger.warning("Token exchange failed: %s", err.kind.value)
                outcome = err
            return OperationResult.failure(err)
        else:
            if generation != self._generation:
                logger.debug("Token exchange result discarded (signed out meanwhile)")
                return OperationResult.failure(BudgetApiError(ErrorKind.UNAUTHENTICATED))
            self._token = token
            self._set_state(SessionState.SIGNED_IN)
            signed_in = True
        finally:
            # Failed, cancelled or abandoned: never leave the session stuck in EXCHANGING
            if not signed_in and generation == self._generation:
                self._token = None
                self._set_state(SessionState.SIGNED_OUT)
            self._status.finish(outcome)

        for listener in list(self._signed_in_listeners):
            try:
                await listener()
            except Exception:
                logger.exception("Signed-in listener %r failed", listener)
        return OperationResult.success(token)

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        logger.info("Session %s -> %s", self._state.value, state.value)
        self._state = state
        self._notify()


__all__ = ["SessionManager", "SessionState"]
