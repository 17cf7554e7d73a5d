from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Generic, List, Mapping, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from .errors import BudgetApiError, ErrorKind
from .models import (
    Account,
    AccountRequest,
    Envelope,
    EnvelopeRequest,
    Goal,
    GoalRequest,
    format_money,
    format_timestamp,
)


ModelT = TypeVar("ModelT", bound=BaseModel)

RequestFields = Union[BaseModel, Mapping[str, Any]]


def _summarize(ve: ValidationError) -> str:
    first = ve.errors()[0]
    loc = ".".join(str(p) for p in first.get("loc", ())) or "<root>"
    return f"{ve.title}.{loc}: {first.get('msg')} ({ve.error_count()} error(s))"


def decode_model(model: Type[ModelT], payload: Any) -> ModelT:
    """Validate a decoded JSON payload into `model` or raise DECODING_FAILED."""
    try:
        return model.model_validate(payload)
    except ValidationError as ve:
        raise BudgetApiError(ErrorKind.DECODING_FAILED, detail=_summarize(ve)) from ve


def encode_model(obj: BaseModel) -> Dict[str, Any]:
    """Dict with wire field names; amounts stay Decimal until `dumps`."""
    return obj.model_dump()


def dumps(payload: Any) -> str:
    """
    Compact JSON text for a request body.

    Decimal amounts are written as bare JSON numbers taken from their exact
    decimal text, so they never pass through float. Datetimes use the wire
    timestamp format. Raises ValueError/TypeError for anything else json
    cannot represent.
    """
    if isinstance(payload, BaseModel):
        return dumps(encode_model(payload))
    if isinstance(payload, Decimal):
        if not payload.is_finite():
            raise ValueError(f"amount must be finite, got {payload!r}")
        return format_money(payload)
    if isinstance(payload, datetime):
        return json.dumps(format_timestamp(payload))
    if isinstance(payload, Mapping):
        members = (f"{json.dumps(str(key))}:{dumps(value)}" for key, value in payload.items())
        return "{" + ",".join(members) + "}"
    if isinstance(payload, (list, tuple)):
        return "[" + ",".join(dumps(item) for item in payload) + "]"
    return json.dumps(payload, allow_nan=False)


def _resource_id(value: Any) -> int:
    # bool is an int subclass; True is not an id
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise BudgetApiError(
            ErrorKind.INVALID_REQUEST, detail=f"resource id must be an integer, got {value!r}"
        )
    try:
        return int(value)
    except ValueError as exc:
        raise BudgetApiError(
            ErrorKind.INVALID_REQUEST, detail=f"resource id must be an integer, got {value!r}"
        ) from exc


@dataclass(frozen=True)
class ResourceSchema(Generic[ModelT]):
    """
    Everything a store needs to know about one resource type.

    - `base_path` is relative to the API root, e.g. "authenticated/accounts".
    - `model` decodes server payloads; `request` is the create/update body.
    - Deletes are POSTs to `{base_path}/{id}/delete`, matching the API.
    """

    name: str
    base_path: str
    model: Type[ModelT]
    request: Type[BaseModel]

    # -------- Paths --------
    def list_path(self) -> str:
        return self.base_path

    def create_path(self) -> str:
        return f"{self.base_path}/create"

    def update_path(self, resource_id: int) -> str:
        return f"{self.base_path}/{_resource_id(resource_id)}/update"

    def delete_path(self, resource_id: int) -> str:
        return f"{self.base_path}/{_resource_id(resource_id)}/delete"

    # -------- Codec --------
    def decode(self, payload: Any) -> ModelT:
        return decode_model(self.model, payload)

    def decode_list(self, payload: Any) -> List[ModelT]:
        if not isinstance(payload, list):
            raise BudgetApiError(
                ErrorKind.DECODING_FAILED,
                detail=f"expected a list of {self.model.__name__}, got {type(payload).__name__}",
            )
        return [self.decode(item) for item in payload]

    def build_request(self, fields: RequestFields) -> BaseModel:
        """Coerce caller fields into the request model or raise INVALID_REQUEST."""
        if isinstance(fields, self.request):
            return fields
        try:
            raw = fields.model_dump() if isinstance(fields, BaseModel) else dict(fields)
        except (TypeError, ValueError) as exc:
            raise BudgetApiError(
                ErrorKind.INVALID_REQUEST,
                detail=f"request fields must be a mapping or model, got {type(fields).__name__}",
            ) from exc
        try:
            return self.request.model_validate(raw)
        except ValidationError as ve:
            raise BudgetApiError(ErrorKind.INVALID_REQUEST, detail=_summarize(ve)) from ve

    def encode(self, request: BaseModel) -> Dict[str, Any]:
        return encode_model(request)


ACCOUNTS: ResourceSchema[Account] = ResourceSchema(
    name="accounts",
    base_path="authenticated/accounts",
    model=Account,
    request=AccountRequest,
)

ENVELOPES: ResourceSchema[Envelope] = ResourceSchema(
    name="envelopes",
    base_path="authenticated/envelopes",
    model=Envelope,
    request=EnvelopeRequest,
)

GOALS: ResourceSchema[Goal] = ResourceSchema(
    name="goals",
    base_path="authenticated/goals",
    model=Goal,
    request=GoalRequest,
)


__all__ = [
    "ACCOUNTS",
    "ENVELOPES",
    "GOALS",
    "RequestFields",
    "ResourceSchema",
    "decode_model",
    "dumps",
    "encode_model",
]
