from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import List, Optional

import httpx
import pytest

from budget_api.codec import ACCOUNTS, ENVELOPES, GOALS
from budget_api.errors import BudgetApiError, ErrorKind
from budget_api.transport import BudgetApiTransport
from budget_state.status import ClientStatus
from budget_state.store import ResourceStore

from fake_api import BASE_URL, FakeBudgetApi, account_wire, envelope_wire, goal_wire


class _Token:
    def __init__(self, value: Optional[str] = "tok1") -> None:
        self.value = value

    def __call__(self) -> Optional[str]:
        return self.value


def _store(api: FakeBudgetApi, schema, token: Optional[str] = "tok1"):
    status = ClientStatus()
    transport = BudgetApiTransport(BASE_URL, client=api.client())
    return ResourceStore(schema, transport, _Token(token), status), status


@pytest.mark.asyncio
async def test_load_replaces_collection_in_server_order():
    api = FakeBudgetApi()
    api.collections["accounts"] = [account_wire(2, "B"), account_wire(1, "A")]
    store, status = _store(api, ACCOUNTS)

    result = await store.load()

    assert result.ok
    assert [a.id for a in store.items] == [2, 1]
    assert status.is_loading is False
    assert status.last_error is None


@pytest.mark.asyncio
async def test_load_twice_is_idempotent():
    api = FakeBudgetApi()
    api.collections["envelopes"] = [envelope_wire(1), envelope_wire(2, "Rent")]
    store, _ = _store(api, ENVELOPES)

    await store.load()
    first = store.items
    await store.load()

    assert store.items == first


@pytest.mark.asyncio
async def test_failed_load_leaves_collection_untouched():
    api = FakeBudgetApi()
    api.collections["goals"] = [goal_wire(1)]
    store, status = _store(api, GOALS)
    await store.load()

    api.queue("GET", "authenticated/goals", httpx.Response(503))
    result = await store.load()

    assert result.error == BudgetApiError.server_error(503)
    assert [g.id for g in store.items] == [1]
    assert status.last_error == BudgetApiError.server_error(503)
    assert status.is_loading is False


@pytest.mark.asyncio
async def test_load_with_bad_payload_is_decoding_failed():
    api = FakeBudgetApi()
    api.queue("GET", "authenticated/accounts", httpx.Response(200, json=[{"id": "x"}]))
    store, status = _store(api, ACCOUNTS)

    result = await store.load()

    assert result.error is not None and result.error.kind is ErrorKind.DECODING_FAILED
    assert store.items == []


@pytest.mark.asyncio
async def test_create_refetches_instead_of_appending():
    api = FakeBudgetApi()
    api.collections["accounts"] = [account_wire(40, "Existing")]
    store, _ = _store(api, ACCOUNTS)

    result = await store.create({"name": "Savings", "balance": Decimal("0")})

    assert result.ok
    assert result.value is not None and result.value.name == "Savings"
    assert [r.method for r in api.requests] == ["POST", "GET"]
    server = ACCOUNTS.decode_list(api.collections["accounts"])
    assert store.items == server
    assert len([a for a in store.items if a.name == "Savings"]) == 1


@pytest.mark.asyncio
async def test_update_uses_server_response_not_local_patch():
    api = FakeBudgetApi()
    api.collections["envelopes"] = [envelope_wire(5, "Food", "10.00")]
    store, _ = _store(api, ENVELOPES)
    await store.load()

    result = await store.update(5, {"name": "Food", "amount": "42.50"})

    assert result.ok
    assert api.calls("POST", "authenticated/envelopes/5/update")
    assert store.get(5).amount == Decimal("42.50")


@pytest.mark.asyncio
async def test_delete_posts_to_delete_endpoint_and_reloads():
    api = FakeBudgetApi()
    api.collections["goals"] = [goal_wire(1), goal_wire(2, "Car")]
    store, _ = _store(api, GOALS)
    await store.load()

    result = await store.delete(1)

    assert result.ok
    delete_calls = api.calls(path="authenticated/goals/1/delete")
    assert [r.method for r in delete_calls] == ["POST"]
    assert not api.calls("DELETE")
    assert [g.id for g in store.items] == [2]


@pytest.mark.asyncio
async def test_delete_then_failed_reload_keeps_stale_collection():
    api = FakeBudgetApi()
    api.collections["envelopes"] = [envelope_wire(7), envelope_wire(8, "Gas")]
    store, status = _store(api, ENVELOPES)
    await store.load()
    before = store.items

    api.queue("POST", "authenticated/envelopes/7/delete", httpx.Response(200, content=b""))
    api.queue("GET", "authenticated/envelopes", httpx.Response(500))
    result = await store.delete(7)

    assert result.error == BudgetApiError.server_error(500)
    assert store.items == before
    assert status.last_error == BudgetApiError.server_error(500)
    assert status.is_loading is False
    assert len(api.calls("GET", "authenticated/envelopes")) == 2


@pytest.mark.asyncio
async def test_failed_mutation_records_error_without_retry_or_reload():
    api = FakeBudgetApi()
    api.queue("POST", "authenticated/accounts/create", httpx.Response(422))
    store, status = _store(api, ACCOUNTS)

    result = await store.create({"name": "Cash", "balance": "1"})

    assert result.error == BudgetApiError.server_error(422)
    assert len(api.requests) == 1
    assert status.last_error == BudgetApiError.server_error(422)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "call",
    [
        lambda s: s.load(),
        lambda s: s.create({"name": "Cash", "balance": "1"}),
        lambda s: s.update(1, {"name": "Cash", "balance": "1"}),
        lambda s: s.delete(1),
    ],
)
async def test_operations_without_token_fail_fast(call):
    api = FakeBudgetApi()
    store, status = _store(api, ACCOUNTS, token=None)

    result = await call(store)

    assert result.error == BudgetApiError(ErrorKind.UNAUTHENTICATED)
    assert status.last_error == BudgetApiError(ErrorKind.UNAUTHENTICATED)
    assert api.requests == []


@pytest.mark.asyncio
async def test_blank_name_is_rejected_locally():
    api = FakeBudgetApi()
    store, status = _store(api, GOALS)

    result = await store.create({"name": "  ", "target_amount": "10"})

    assert result.error is not None and result.error.kind is ErrorKind.INVALID_REQUEST
    assert status.last_error is result.error
    assert api.requests == []


@pytest.mark.asyncio
async def test_clear_empties_collection_and_discards_inflight_load():
    api = FakeBudgetApi()
    api.collections["accounts"] = [account_wire(1)]
    store, status = _store(api, ACCOUNTS)
    gate = asyncio.Event()
    real_get = store._transport.get

    async def gated_get(path, *, bearer_token=None):
        await gate.wait()
        return await real_get(path, bearer_token=bearer_token)

    store._transport.get = gated_get  # type: ignore[method-assign]
    pending = asyncio.create_task(store.load())
    await asyncio.sleep(0)
    store.clear()
    gate.set()
    await pending

    assert store.items == []
    assert status.is_loading is False


@pytest.mark.asyncio
async def test_closed_store_ignores_late_results():
    api = FakeBudgetApi()
    api.collections["goals"] = [goal_wire(1)]
    store, _ = _store(api, GOALS)
    gate = asyncio.Event()
    real_get = store._transport.get

    async def gated_get(path, *, bearer_token=None):
        await gate.wait()
        return await real_get(path, bearer_token=bearer_token)

    store._transport.get = gated_get  # type: ignore[method-assign]
    pending = asyncio.create_task(store.load())
    await asyncio.sleep(0)
    store.close()
    gate.set()
    await pending

    assert store.items == []
    after_close = await store.load()
    assert not after_close.ok
    assert len(api.requests) == 1


@pytest.mark.asyncio
async def test_concurrent_mutations_on_one_store_are_serialized():
    api = FakeBudgetApi()
    store, _ = _store(api, ACCOUNTS)

    await asyncio.gather(
        store.create({"name": "A", "balance": "1"}),
        store.create({"name": "B", "balance": "2"}),
    )

    methods: List[str] = [r.method for r in api.requests]
    assert methods == ["POST", "GET", "POST", "GET"]
    assert sorted(a.name for a in store.items) == ["A", "B"]


@pytest.mark.asyncio
async def test_collection_changes_notify_subscribers():
    api = FakeBudgetApi()
    api.collections["accounts"] = [account_wire(1)]
    store, _ = _store(api, ACCOUNTS)
    seen: List[int] = []
    unsubscribe = store.subscribe(lambda s: seen.append(len(s)))

    await store.load()
    store.clear()
    unsubscribe()
    await store.load()

    assert seen == [1, 0]


@pytest.mark.asyncio
async def test_create_sends_amount_as_json_number():
    api = FakeBudgetApi()
    store, _ = _store(api, ACCOUNTS)

    await store.create({"name": "Checking", "balance": "100.50"})

    (sent,) = api.calls("POST", "authenticated/accounts/create")
    assert sent.content == b'{"name":"Checking","balance":100.50}'


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "call",
    [
        lambda s: s.create(42),
        lambda s: s.update("abc", {"name": "Cash", "balance": "1"}),
        lambda s: s.delete(None),
    ],
)
async def test_malformed_arguments_are_invalid_request(call):
    api = FakeBudgetApi()
    store, status = _store(api, ACCOUNTS)

    result = await call(store)

    assert result.error is not None and result.error.kind is ErrorKind.INVALID_REQUEST
    assert status.last_error is result.error
    assert api.requests == []


def _gate_gets(store: ResourceStore, gate: asyncio.Event) -> None:
    real_get = store._transport.get

    async def gated_get(path, *, bearer_token=None):
        await gate.wait()
        return await real_get(path, bearer_token=bearer_token)

    store._transport.get = gated_get  # type: ignore[method-assign]


@pytest.mark.asyncio
async def test_cancelled_load_releases_loading_and_lock():
    api = FakeBudgetApi()
    api.collections["accounts"] = [account_wire(1)]
    store, status = _store(api, ACCOUNTS)
    gate = asyncio.Event()
    _gate_gets(store, gate)

    pending = asyncio.create_task(store.load())
    await asyncio.sleep(0)
    assert status.is_loading is True
    pending.cancel()
    with pytest.raises(asyncio.CancelledError):
        await pending

    assert status.is_loading is False
    gate.set()
    assert (await store.load()).ok
    assert [a.id for a in store.items] == [1]


@pytest.mark.asyncio
async def test_cancelled_mutation_releases_loading():
    api = FakeBudgetApi()
    store, status = _store(api, ACCOUNTS)
    gate = asyncio.Event()
    real_post = store._transport.post

    async def gated_post(path, body, *, bearer_token=None):
        await gate.wait()
        return await real_post(path, body, bearer_token=bearer_token)

    store._transport.post = gated_post  # type: ignore[method-assign]
    pending = asyncio.create_task(store.create({"name": "Cash", "balance": "1"}))
    await asyncio.sleep(0)
    pending.cancel()
    with pytest.raises(asyncio.CancelledError):
        await pending

    assert status.is_loading is False
    assert status.last_error is None


@pytest.mark.asyncio
async def test_failure_arriving_after_clear_is_not_recorded():
    api = FakeBudgetApi()
    api.queue("GET", "authenticated/accounts", httpx.Response(500))
    store, status = _store(api, ACCOUNTS)
    gate = asyncio.Event()
    _gate_gets(store, gate)

    pending = asyncio.create_task(store.load())
    await asyncio.sleep(0)
    store.clear()
    status.clear_error()
    gate.set()
    result = await pending

    assert result.error == BudgetApiError.server_error(500)
    assert status.last_error is None
    assert status.is_loading is False


@pytest.mark.asyncio
async def test_mutation_failing_after_close_is_not_recorded():
    api = FakeBudgetApi()
    api.queue("POST", "authenticated/goals/create", httpx.Response(500))
    store, status = _store(api, GOALS)
    gate = asyncio.Event()
    real_post = store._transport.post

    async def gated_post(path, body, *, bearer_token=None):
        await gate.wait()
        return await real_post(path, body, bearer_token=bearer_token)

    store._transport.post = gated_post  # type: ignore[method-assign]
    pending = asyncio.create_task(store.create({"name": "Car", "target_amount": "10"}))
    await asyncio.sleep(0)
    store.close()
    gate.set()
    result = await pending

    assert not result.ok
    assert status.last_error is None
    assert status.is_loading is False
