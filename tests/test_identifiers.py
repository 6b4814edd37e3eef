import pytest

from deviceguard.modules.devices import (
    IdentifierKind,
    InvalidIdentifierError,
    NormalizedId,
    candidates,
    normalize,
)


@pytest.mark.parametrize(
    "raw",
    ["352099001761481", "35-209900-176148-1", " 35 2099 0017 6148 1 ", "35.209900.176148.1"],
)
def test_imei_separators_are_ignored(raw):
    assert normalize(raw, IdentifierKind.IMEI) == NormalizedId(IdentifierKind.IMEI, "352099001761481")


@pytest.mark.parametrize("raw", ["35209900176148", "3520990017614811", "35209900176148A", ""])
def test_imei_requires_fifteen_digits(raw):
    with pytest.raises(InvalidIdentifierError):
        normalize(raw, IdentifierKind.IMEI)


def test_serial_is_uppercased_and_compacted():
    assert normalize("c02 xk-1", IdentifierKind.SERIAL).value == "C02XK1"


def test_serial_rejects_symbols_and_overlong_values():
    with pytest.raises(InvalidIdentifierError):
        normalize("C02#XK1", IdentifierKind.SERIAL)
    with pytest.raises(InvalidIdentifierError):
        normalize("A" * 65, IdentifierKind.SERIAL)
    with pytest.raises(InvalidIdentifierError):
        normalize(" - ", IdentifierKind.SERIAL)


def test_candidates_deduplicate_digit_only_values():
    found = candidates("123456789012345")
    assert [item.kind for item in found] == [IdentifierKind.IMEI]
    assert found[0].value == "123456789012345"


def test_candidates_fall_back_to_serial():
    found = candidates("sn-4411")
    assert found == [NormalizedId(IdentifierKind.SERIAL, "SN4411")]


def test_candidates_reject_garbage():
    with pytest.raises(InvalidIdentifierError):
        candidates("!!!")


def test_normalization_is_idempotent():
    once = normalize("35-209900-176148-1", IdentifierKind.IMEI)
    assert normalize(once.value, IdentifierKind.IMEI) == once
