import pytest

from bookstore.errors import InvalidInput
from bookstore.identifiers import Identifier, resolve_identifier


@pytest.mark.parametrize("raw,expected", [(7, 7), ("42", 42), (" 3 ", 3)])
def test_numeric_values_resolve_to_primary_key(raw, expected):
    identifier = resolve_identifier(raw)
    assert identifier.is_numeric
    assert identifier.value == expected


def test_other_strings_are_document_ids():
    identifier = resolve_identifier("abc123def")
    assert not identifier.is_numeric
    assert identifier.value == "abc123def"


def test_identifier_passes_through():
    identifier = Identifier("doc")
    assert resolve_identifier(identifier) is identifier


@pytest.mark.parametrize("raw", [0, -1, "0", "", "   ", None, True, 1.5, []])
def test_invalid_values_are_rejected(raw):
    with pytest.raises(InvalidInput) as exc_info:
        resolve_identifier(raw, field="bookId")
    assert exc_info.value.details["field"] == "bookId"
