import pytest

from oceancc.x64regs import (
    RexFields,
    X64Register,
    encode_register_reference,
    encode_rex_prefix,
    register_slots,
    registers_by_bits,
)


def test_register_order():
    regs = list(X64Register)
    assert [r.value for r in regs] == list(range(len(regs)))
    assert registers_by_bits(8)[0] is X64Register.AL
    assert registers_by_bits(256)[-1] is X64Register.YMM7


def test_slots_are_disjoint():
    seen = [reg for slot in register_slots() for reg in slot]
    assert len(seen) == len(set(seen))


def test_first_slot_is_accumulator():
    assert register_slots()[0] == (
        X64Register.RAX,
        X64Register.EAX,
        X64Register.AX,
        X64Register.AL,
        X64Register.AH,
    )


def test_64_bit_registers_exclude_stack_pointers():
    regs = registers_by_bits(64)
    assert X64Register.RSP not in regs
    assert X64Register.RBP not in regs
    assert X64Register.R15 in regs
    assert len(regs) == len(set(regs))


def test_32_bit_register_count_matches_64():
    assert len(registers_by_bits(32)) == len(registers_by_bits(64))
    assert X64Register.ESI in registers_by_bits(32)


def test_unknown_width():
    with pytest.raises(ValueError):
        registers_by_bits(48)


def test_empty_rex_prefix():
    assert encode_rex_prefix(RexFields()) == 2


@pytest.mark.parametrize("name, bit", [("W", 4), ("R", 5), ("X", 6), ("B", 7)])
def test_rex_bit_positions(name, bit):
    prefix = encode_rex_prefix(RexFields(**{name: True}))
    assert prefix == 2 | (1 << bit)


def test_rex_prefix_fits_in_byte():
    assert encode_rex_prefix(RexFields(True, True, True, True)) <= 0xFF


def test_reference_extended_register_sets_r():
    value, fields = encode_register_reference(X64Register.R9, RexFields())
    assert value == 1
    assert fields.R is True
    assert fields.W is False


@pytest.mark.parametrize(
    "reg, expected",
    [(X64Register.RAX, 0), (X64Register.RDI, 7), (X64Register.EAX, 0), (X64Register.EDI, 7)],
)
def test_reference_legacy_registers(reg, expected):
    value, fields = encode_register_reference(reg, RexFields())
    assert value == expected
    assert fields == RexFields()


def test_reference_keeps_other_fields():
    _, fields = encode_register_reference(X64Register.R15, RexFields(W=True))
    assert fields == RexFields(W=True, R=True)


def test_reference_rejects_byte_register():
    with pytest.raises(ValueError):
        encode_register_reference(X64Register.AL, RexFields())