"""Lookup keys.

Every entity can be addressed either by its numeric primary key or by its
``document_id``. ``resolve_identifier`` is the only place that decides which
one a raw value is.
"""

from dataclasses import dataclass
from typing import Any, Union

from bookstore.errors import InvalidInput


@dataclass(frozen=True)
class Identifier:
    value: Union[int, str]

    @property
    def is_numeric(self) -> bool:
        return isinstance(self.value, int)


def resolve_identifier(raw: Any, field: str = "id") -> Identifier:
    if isinstance(raw, Identifier):
        return raw
    if isinstance(raw, bool):
        raise InvalidInput(f"{field} must be a positive integer or a document id", {"field": field})
    if isinstance(raw, int):
        if raw <= 0:
            raise InvalidInput(f"{field} must be a positive integer", {"field": field})
        return Identifier(raw)
    if isinstance(raw, str):
        value = raw.strip()
        if value.isascii() and value.isdigit():
            number = int(value)
            if number <= 0:
                raise InvalidInput(f"{field} must be a positive integer", {"field": field})
            return Identifier(number)
        if value:
            return Identifier(value)
    raise InvalidInput(f"{field} must be a positive integer or a document id", {"field": field})


def identifier_clause(model, identifier: Identifier):
    if identifier.is_numeric:
        return model.id == identifier.value
    return model.document_id == identifier.value
