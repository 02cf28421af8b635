import pytest

from slot_math import (
    array_base_slot, element_slot, element_slots, is_empty_word, pad_word,
    parse_slot, slot_hex, to_bytes32,
)

BASE_0 = 0x290DECD9548B62A8D60345A988386FC84BA6BC95484008F6362F93160EF3E563
BASE_1 = 0xB10E2D527612073B26EECDFD717E6A320CF44B4AFAC2B0732D9FCBE2B7FA0CF6


def test_array_base_matches_known_keccak_vectors():
    assert array_base_slot(0) == BASE_0
    assert array_base_slot(1) == BASE_1


def test_array_base_depends_on_header_slot_only():
    assert array_base_slot(0) == array_base_slot(0)
    assert array_base_slot(0) != array_base_slot(2)


def test_element_slots_width_two():
    assert element_slots(BASE_0, 0, 2) == (BASE_0, BASE_0 + 1)
    assert element_slots(BASE_0, 1, 2) == (BASE_0 + 2, BASE_0 + 3)
    assert element_slots(BASE_0, 2, 2) == (BASE_0 + 4, BASE_0 + 5)
    assert slot_hex(element_slot(BASE_0, 2, 2)) == "0x290decd9548b62a8d60345a988386fc84ba6bc95484008f6362f93160ef3e567"


def test_element_slot_wraps_around_slot_space():
    top = 2**256 - 1
    assert element_slots(top, 0, 2) == (top, 0)


def test_parse_slot_accepts_decimal_and_hex():
    assert parse_slot("5") == 5
    assert parse_slot("0x10") == 16
    assert parse_slot(" 0x0 ") == 0


@pytest.mark.parametrize("raw", ["-1", hex(2**256), "zz", ""])
def test_parse_slot_rejects_bad_input(raw):
    with pytest.raises(ValueError):
        parse_slot(raw)


def test_word_helpers():
    assert to_bytes32(1) == b"\x00" * 31 + b"\x01"
    assert pad_word(b"\x03\xe8") == b"\x00" * 30 + b"\x03\xe8"
    assert is_empty_word(None)
    assert is_empty_word(b"\x00" * 32)
    assert not is_empty_word(to_bytes32(1))
    with pytest.raises(ValueError):
        pad_word(b"\x01" * 33)
