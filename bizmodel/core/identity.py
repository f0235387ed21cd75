# bizmodel/core/identity.py
"""
Who a request is acting for.

A user is either durable (a row in `users`) or staged (credentials and quiz
answers parked in `staged_accounts` until payment). The two live in different
namespaces, so they get different types:

    UserRef = DurableRef | StagedRef

On the wire (JSON bodies, URL segments) a durable user is its numeric id and
a staged user is "temp_<token>". parse_user_ref / UserRef.wire are the only
places that know about that string shape; everything else matches on type.
"""

from dataclasses import dataclass
from typing import Annotated, Any, Union

from pydantic import BeforeValidator, PlainSerializer, WithJsonSchema

STAGED_PREFIX = "temp_"


@dataclass(frozen=True)
class DurableRef:
    user_id: int

    @property
    def wire(self) -> int:
        return self.user_id


@dataclass(frozen=True)
class StagedRef:
    token: str

    @property
    def wire(self) -> str:
        return f"{STAGED_PREFIX}{self.token}"

    def __repr__(self) -> str:
        # Staged tokens act as credentials; keep them out of reprs / logs.
        return f"StagedRef(token={self.token[:6]}…)"


UserRef = Union[DurableRef, StagedRef]


def parse_user_ref(value: Any) -> UserRef:
    """
    Parse the wire form of a user reference.

    Accepts ints, digit strings, "temp_<token>" and already-parsed refs.

    Raises:
        ValueError: for anything else (surfaces as a 400 through pydantic).
    """
    if isinstance(value, (DurableRef, StagedRef)):
        return value
    if isinstance(value, bool):
        raise ValueError("invalid user reference")
    if isinstance(value, int):
        if value <= 0:
            raise ValueError("invalid user id")
        return DurableRef(value)
    if isinstance(value, str):
        value = value.strip()
        if value.startswith(STAGED_PREFIX):
            token = value[len(STAGED_PREFIX):]
            if not token:
                raise ValueError("empty staged token")
            return StagedRef(token)
        if value.isdigit() and int(value) > 0:
            return DurableRef(int(value))
    raise ValueError("invalid user reference")


# Use as a pydantic field type: parses on input, renders the wire form on output.
UserRefField = Annotated[
    Any,
    BeforeValidator(parse_user_ref),
    PlainSerializer(lambda ref: ref.wire, return_type=Union[int, str]),
    WithJsonSchema({"anyOf": [{"type": "integer"}, {"type": "string"}]}),
]
