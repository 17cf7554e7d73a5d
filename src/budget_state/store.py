from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Generic, List, Optional, Tuple, TypeVar

from pydantic import BaseModel

from budget_api.codec import RequestFields, ResourceSchema, decode_model
from budget_api.errors import BudgetApiError, ErrorKind
from budget_api.models import EmptyRequest, EmptyResponse
from budget_api.transport import BudgetApiTransport

from .status import ClientStatus, Observable, OperationResult


logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

TokenSource = Callable[[], Optional[str]]


class ResourceStore(Observable, Generic[ModelT]):
    """
    Owns the in-memory collection of one resource type.

    Behavior
    - `load()` replaces the collection wholesale with the server's list, in
      server order. On failure the collection is left untouched.
    - `create/update/delete` never patch the collection locally: each
      successful mutation is followed by a fresh `load()`.
    - Every operation fails fast with UNAUTHENTICATED, without touching the
      network, when no session token is available.
    - Operations on the same store are queued behind a lock; a mutation and
      its follow-up load run as one unit.
    - After `close()` (owner torn down) or `clear()` (sign-out), results of
      requests still in flight are discarded.

    Failures are reported through the returned `OperationResult` and the
    shared `ClientStatus`; nothing is raised to the caller.
    """

    def __init__(
        self,
        schema: ResourceSchema[ModelT],
        transport: BudgetApiTransport,
        token_source: TokenSource,
        status: ClientStatus,
    ) -> None:
        super().__init__()
        self._schema = schema
        self._transport = transport
        self._token_source = token_source
        self._status = status
        self._items: Tuple[ModelT, ...] = ()
        self._lock = asyncio.Lock()
        self._generation = 0
        self._closed = False

    @property
    def schema(self) -> ResourceSchema[ModelT]:
        return self._schema

    @property
    def name(self) -> str:
        return self._schema.name

    @property
    def items(self) -> List[ModelT]:
        return list(self._items)

    @property
    def closed(self) -> bool:
        return self._closed

    def get(self, resource_id: int) -> Optional[ModelT]:
        for item in self._items:
            if getattr(item, "id", None) == resource_id:
                return item
        return None

    def __len__(self) -> int:
        return len(self._items)

    # --------------- Public API ---------------
    async def load(self) -> OperationResult[List[ModelT]]:
        token, denied = self._authorize("load")
        if denied is not None:
            return denied
        generation = self._generation
        async with self._lock:
            if generation != self._generation:
                return self._signed_out_while_queued("load")
            return await self._load(token)

    async def create(self, fields: RequestFields) -> OperationResult[ModelT]:
        return await self._mutate(
            "create",
            lambda: self._schema.build_request(fields),
            self._schema.create_path,
            self._schema.decode,
        )

    async def update(self, resource_id: int, fields: RequestFields) -> OperationResult[ModelT]:
        return await self._mutate(
            "update",
            lambda: self._schema.build_request(fields),
            lambda: self._schema.update_path(resource_id),
            self._schema.decode,
        )

    async def delete(self, resource_id: int) -> OperationResult[None]:
        return await self._mutate(
            "delete",
            EmptyRequest,
            lambda: self._schema.delete_path(resource_id),
            self._decode_empty,
        )

    def clear(self) -> None:
        """Drop the collection (sign-out); in-flight results become stale."""
        self._generation += 1
        if self._items:
            self._items = ()
            self._notify()

    def close(self) -> None:
        """Detach from the owner; later results are discarded."""
        self._closed = True
        self._generation += 1

    # --------------- Internal ---------------
    def _authorize(self, op: str) -> Tuple[Optional[str], Optional[OperationResult[Any]]]:
        if self._closed:
            err = BudgetApiError(ErrorKind.UNKNOWN, detail=f"{self.name} store is closed")
            return (None, OperationResult.failure(err))
        token = self._token_source()
        if not token:
            err = BudgetApiError(ErrorKind.UNAUTHENTICATED)
            logger.warning("%s.%s rejected: not authenticated", self.name, op)
            self._status.fail(err)
            return (None, OperationResult.failure(err))
        return (token, None)

    def _signed_out_while_queued(self, op: str) -> OperationResult[Any]:
        logger.debug("%s.%s dropped: store cleared while waiting", self.name, op)
        return OperationResult.failure(BudgetApiError(ErrorKind.UNAUTHENTICATED))

    async def _load(self, token: str) -> OperationResult[List[ModelT]]:
        generation = self._generation
        outcome: Optional[BudgetApiError] = None
        self._status.begin()
        try:
            payload = await self._transport.get(self._schema.list_path(), bearer_token=token)
            items = self._schema.decode_list(payload)
        except BudgetApiError as err:
            if self._is_current(generation, "load"):
                logger.warning("%s.load failed: %s", self.name, err.kind.value)
                outcome = err
            return OperationResult.failure(err)
        else:
            if not self._is_current(generation, "load"):
                return OperationResult.success(self.items)
            self._items = tuple(items)
        finally:
            self._status.finish(outcome)

        self._notify()
        return OperationResult.success(list(items))

    @staticmethod
    def _decode_empty(payload: Any) -> None:
        decode_model(EmptyResponse, payload)
        return None

    def _is_current(self, generation: int, op: str) -> bool:
        if generation == self._generation:
            return True
        logger.debug("%s.%s outcome discarded (store cleared or closed)", self.name, op)
        return False

    async def _mutate(
        self,
        op: str,
        build: Callable[[], BaseModel],
        path: Callable[[], str],
        decode: Callable[[Any], Any],
    ) -> OperationResult[Any]:
        token, denied = self._authorize(op)
        if denied is not None:
            return denied
        try:
            request = build()
            target = path()
        except BudgetApiError as err:
            logger.warning("%s.%s rejected: %s", self.name, op, err.message)
            self._status.fail(err)
            return OperationResult.failure(err)

        generation = self._generation
        async with self._lock:
            if generation != self._generation:
                return self._signed_out_while_queued(op)
            outcome: Optional[BudgetApiError] = None
            self._status.begin()
            try:
                payload = await self._transport.post(target, request, bearer_token=token)
                value = decode(payload)
            except BudgetApiError as err:
                if self._is_current(generation, op):
                    logger.warning("%s.%s failed: %s", self.name, op, err.kind.value)
                    outcome = err
                return OperationResult.failure(err)
            else:
                if not self._is_current(generation, op):
                    return OperationResult.success(value)
                # Re-fetch rather than patching the collection locally
                reloaded = await self._load(token)
                if not reloaded.ok:
                    return OperationResult(value=value, error=reloaded.error)
                return OperationResult.success(value)
            finally:
                self._status.finish(outcome)


__all__ = ["ResourceStore", "TokenSource"]
