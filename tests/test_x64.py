import pytest

from oceancc.x64 import CodegenError, VirtualRegister, X64CodeGen
from oceancc.x64regs import X64Register as R


@pytest.fixture
def cg():
    return X64CodeGen()


def le32(value):
    return (value & 0xFFFFFFFF).to_bytes(4, "little")


def test_push_pop_nop(cg):
    cg.push(R.RAX)
    cg.pop(R.RAX)
    cg.nop()
    assert bytes(cg.bytecode) == bytes([0x50, 0x58, 0x90])


def test_push_rejects_32_bit(cg):
    with pytest.raises(CodegenError):
        cg.push(R.EAX)


def test_pop_rejects_new_register(cg):
    with pytest.raises(CodegenError):
        cg.pop(R.R8)


def test_mov_r_imm32_old_register(cg):
    offset = cg.mov_r_imm32(R.RAX, 5)
    assert bytes(cg.bytecode) == bytes([0x48, 0xB8]) + le32(5) + le32(0)
    assert offset == 2


def test_mov_r_imm32_new_register(cg):
    cg.mov_r_imm32(R.R8, 7)
    assert bytes(cg.bytecode[:2]) == bytes([0x49, 0xB8])
    assert bytes(cg.bytecode[2:6]) == le32(7)


def test_mov_r_imm32_rejects_32_bit(cg):
    with pytest.raises(CodegenError):
        cg.mov_r_imm32(R.EAX, 1)


def test_set32_patches_immediate(cg):
    offset = cg.mov_r_imm32(R.RAX, 0)
    cg.set32(offset, 0x08049000)
    assert int.from_bytes(cg.bytecode[offset:offset + 4], "little") == 0x08049000


def test_set8_and_bounds(cg):
    cg.nop()
    cg.set8(0, 0xC3)
    assert cg.bytecode[0] == 0xC3
    with pytest.raises(IndexError):
        cg.set32(0, 1)


def test_mov(cg):
    assert cg.mov(R.RAX, R.RAX) == R.RAX
    assert bytes(cg.bytecode) == bytes([0x40, 0x89, 0xC0])


def test_mov_rejects_new_registers(cg):
    with pytest.raises(CodegenError):
        cg.mov(R.R8, R.RAX)


def test_xor_32_and_64(cg):
    cg.xor(R.EAX, R.EAX)
    cg.xor(R.RAX, R.RAX)
    assert bytes(cg.bytecode) == bytes([0x31, 0xC0, 0x48, 0x31, 0xC0])


def test_xor_width_mismatch(cg):
    with pytest.raises(CodegenError):
        cg.xor(R.EAX, R.RAX)


@pytest.mark.parametrize(
    "a, b, prefix",
    [
        (R.RAX, R.RAX, 0x48),
        (R.RAX, R.R8, 0x4C),
        (R.R8, R.RAX, 0x49),
        (R.R8, R.R8, 0x4D),
    ],
)
def test_add_prefixes(cg, a, b, prefix):
    assert cg.add(a, b) == a
    assert bytes(cg.bytecode) == bytes([prefix, 0x01, 0xC0])


def test_add_rejects_32_bit(cg):
    with pytest.raises(CodegenError):
        cg.add(R.EAX, R.EAX)


def test_sub_regn_imm32_rsp(cg):
    assert cg.sub_regn_imm32(R.RSP, 16) == R.RSP
    assert bytes(cg.bytecode) == bytes([0x40, 0x81, 0xEC]) + le32(16)


def test_store_to_stack(cg):
    cg.store_value_offset_from_register_to_stack(R.RAX, -8, 8)
    assert bytes(cg.bytecode) == bytes([0x48, 0x89, 0x85]) + le32(-8)


def test_load_from_stack_sizes(cg):
    cg.load_value_offset_from_stack_to_register(R.RAX, -4, 4)
    assert bytes(cg.bytecode) == bytes([0x48, 0x63, 0x85]) + le32(-4)
    cg.bytecode.clear()
    cg.load_value_offset_from_stack_to_register(R.R8, -8, 8)
    assert bytes(cg.bytecode) == bytes([0x4C, 0x8B, 0x85]) + le32(-8)


def test_load_from_stack_word_unhandled(cg):
    with pytest.raises(CodegenError):
        cg.load_value_offset_from_stack_to_register(R.RAX, -2, 2)
    assert len(cg.bytecode) == 0


def test_lea(cg):
    cg.load_lvalue_address_to_register(R.RAX, -16)
    assert bytes(cg.bytecode) == bytes([0x48, 0x8D, 0x85]) + le32(-16)


def test_register_info_tables(cg):
    assert cg.register_name(R.RAX) == "RAX"
    assert cg.reginfo[R.RAX].slot == cg.reginfo[R.EAX].slot
    assert cg.reginfo[R.RAX].bits == 64
    assert cg.reginfo[R.EAX].bits == 32
    assert cg.reginfo[R.RSP].bits == 0


def test_least_used_prefers_first(cg):
    assert cg.least_used_compatible_register(64) == R.RAX
    cg.reginfo[R.RAX].usecount = 1
    assert cg.least_used_compatible_register(64) == R.RCX
    with pytest.raises(CodegenError):
        cg.least_used_compatible_register(12)


def test_map_and_unmap_spills(cg):
    assert cg.map_register(VirtualRegister.GP0) == R.RAX
    assert len(cg.bytecode) == 0
    assert cg.map_register(VirtualRegister.GP0) == R.RAX
    assert bytes(cg.bytecode) == bytes([0x50])
    assert cg.reginfo[R.RAX].usecount == 2
    cg.unmap_register(R.RAX)
    assert bytes(cg.bytecode) == bytes([0x50, 0x58])
    assert cg.reginfo[R.RAX].usecount == 1


def test_map_any_picks_least_used(cg):
    first = cg.map_register(VirtualRegister.ANY)
    second = cg.map_register(VirtualRegister.ANY64)
    assert first == R.RAX
    assert second == R.RCX
    assert cg.map_register(VirtualRegister.ANY32) == R.EAX


def test_map_stack_registers(cg):
    assert cg.map_register(VirtualRegister.SP) == R.RSP
    assert cg.map_register(VirtualRegister.BP) == R.RBP
    assert cg.map_register(VirtualRegister.GP32_1) == R.ECX


def test_position_tracks_emitted_bytes(cg):
    cg.nop()
    cg.mov(R.RAX, R.RAX)
    assert cg.position == len(cg.bytecode) == 4