"""
Tests for the VM and Process on hand-assembled bytecode.
"""

import logging
import math

import pytest
from compiler.bytecode import BytecodeBuilder, OpCode, ValueTag, float32_bits
from vm import (
    VM, Process, Register, HostModel, ObjectModel, NUM_REGISTERS,
    InvalidOpcodeError, TruncatedBytecodeError, RegisterIndexError,
    CallDepthError, UnknownProcedureError, HostError,
)


def assemble(*instructions):
    builder = BytecodeBuilder()
    for opcode, *operands in instructions:
        builder.emit(opcode, *operands)
    return builder.to_bytes()


def load(reg, value):
    return (OpCode.LOAD_IMMEDIATE, reg, ValueTag.NUMBER, float32_bits(value))


def run(code, args=(), vm=None):
    vm = vm or VM()
    vm.add_program(1, code)
    return vm.run_program(1, args)


def binary(opcode, a, b):
    code = assemble(load(0, a), load(1, b), (opcode, 0, 1, 2), (OpCode.RETURN, 2), (OpCode.HALT,))
    return run(code)


class TestBasics:

    def test_halt_only_returns_null(self):
        assert run(assemble((OpCode.HALT,))) == Register(0, 0)

    def test_result_is_null_without_return(self):
        # r0 holds a value, but nothing designated it
        assert run(assemble(load(0, 5), (OpCode.HALT,))).is_null()

    def test_load_immediate_any_tag(self):
        result = run(assemble(
            (OpCode.LOAD_IMMEDIATE, 0, ValueTag.STRING, 7), (OpCode.RETURN, 0), (OpCode.HALT,),
        ))
        assert result == Register(ValueTag.STRING, 7)

    def test_literal_round_trip(self):
        assert run(assemble(load(3, 2.5), (OpCode.RETURN, 3), (OpCode.HALT,))).as_float() == 2.5

    def test_return_only_designates(self):
        code = assemble(
            load(0, 1), (OpCode.RETURN, 0),
            load(1, 2), (OpCode.RETURN, 1),
            (OpCode.HALT,),
        )
        assert run(code).as_float() == 2.0

    def test_argument_pass_through(self):
        args = [Register.number(4), Register(ValueTag.DATUM, 9)]
        code = assemble((OpCode.LOAD_ARGUMENT, 1, 0), (OpCode.RETURN, 0), (OpCode.HALT,))
        assert run(code, args) == args[1]

    def test_missing_argument_is_null(self):
        code = assemble(load(0, 5), (OpCode.LOAD_ARGUMENT, 3, 0), (OpCode.RETURN, 0), (OpCode.HALT,))
        assert run(code, [Register.number(1)]).is_null()

    def test_local_round_trip(self):
        code = assemble(
            load(0, 9), (OpCode.STORE_LOCAL, 0, 15),
            (OpCode.LOAD_LOCAL, 15, 4), (OpCode.RETURN, 4),
            (OpCode.HALT,),
        )
        assert run(code).as_float() == 9.0


class TestArithmetic:

    @pytest.mark.parametrize("opcode,a,b,expected", [
        (OpCode.ADD, 1.5, 2.25, 3.75),
        (OpCode.SUB, 1.0, 3.0, -2.0),
        (OpCode.MUL, -4.0, 0.5, -2.0),
        (OpCode.DIV, 7.0, 2.0, 3.5),
        (OpCode.DIV, 1.0, 0.0, math.inf),
        (OpCode.DIV, -1.0, 0.0, -math.inf),
        (OpCode.MUL, 3e38, 10.0, math.inf),
    ])
    def test_ieee_results(self, opcode, a, b, expected):
        result = binary(opcode, a, b)
        assert result.tag == ValueTag.NUMBER
        assert result.as_float() == expected

    def test_zero_over_zero_is_nan(self):
        assert math.isnan(binary(OpCode.DIV, 0.0, 0.0).as_float())

    def test_float32_rounding(self):
        import numpy as np
        assert binary(OpCode.ADD, 0.1, 0.2).as_float() == float(np.float32(0.1) + np.float32(0.2))

    def test_payload_reinterpreted_regardless_of_tag(self):
        code = assemble(
            (OpCode.LOAD_IMMEDIATE, 0, ValueTag.STRING, float32_bits(2.0)),
            load(1, 3.0),
            (OpCode.MUL, 0, 1, 2), (OpCode.RETURN, 2),
            (OpCode.HALT,),
        )
        assert run(code) == Register.number(6.0)


class TestComparisons:

    @pytest.mark.parametrize("opcode,a,b,expected", [
        (OpCode.LESS_THAN, 1.0, 2.0, 1.0),
        (OpCode.LESS_THAN, 2.0, 2.0, 0.0),
        (OpCode.LESS_OR_EQUAL, 2.0, 2.0, 1.0),
        (OpCode.EQUAL, 2.0, 2.0, 1.0),
        (OpCode.EQUAL, -0.0, 0.0, 1.0),
        (OpCode.EQUAL, 1.0, 2.0, 0.0),
        (OpCode.GREATER_OR_EQUAL, 1.0, 2.0, 0.0),
        (OpCode.GREATER_THAN, 3.0, 2.0, 1.0),
        (OpCode.LESS_THAN, -math.inf, math.inf, 1.0),
    ])
    def test_truth_values(self, opcode, a, b, expected):
        result = binary(opcode, a, b)
        assert result == Register.number(expected)

    @pytest.mark.parametrize("opcode", [
        OpCode.LESS_THAN, OpCode.LESS_OR_EQUAL, OpCode.EQUAL,
        OpCode.GREATER_OR_EQUAL, OpCode.GREATER_THAN,
    ])
    def test_nan_is_unordered(self, opcode):
        assert binary(opcode, math.nan, math.nan) == Register.number(0.0)


class TestJumps:

    def branch(self, opcode, cond_tag, cond_value):
        builder = BytecodeBuilder()
        builder.emit(OpCode.LOAD_IMMEDIATE, 0, cond_tag, cond_value)
        builder.emit(*load(1, 1))
        jump = builder.emit_jump(opcode, 0)
        builder.emit(*load(1, 2))
        builder.patch_jump(jump)
        builder.emit(OpCode.RETURN, 1)
        builder.emit(OpCode.HALT)
        return run(builder.to_bytes()).as_float()

    @pytest.mark.parametrize("tag,value,taken", [
        (ValueTag.NUMBER, float32_bits(1.0), True),
        (ValueTag.NUMBER, 0, False),
        (ValueTag.STRING, 3, True),
        (ValueTag.NULL, 0, False),
        (ValueTag.NUMBER, float32_bits(-0.0), True),
    ])
    def test_jump_true(self, tag, value, taken):
        assert self.branch(OpCode.JUMP_TRUE, tag, value) == (1.0 if taken else 2.0)

    @pytest.mark.parametrize("tag,value,taken", [
        (ValueTag.NUMBER, 0, True),
        (ValueTag.NUMBER, float32_bits(1.0), False),
    ])
    def test_jump_false(self, tag, value, taken):
        assert self.branch(OpCode.JUMP_FALSE, tag, value) == (1.0 if taken else 2.0)

    def test_unconditional_jump(self):
        builder = BytecodeBuilder()
        jump = builder.emit_jump(OpCode.JUMP)
        builder.emit(*load(0, 1))
        builder.patch_jump(jump)
        builder.emit(OpCode.RETURN, 0)
        builder.emit(OpCode.HALT)
        assert run(builder.to_bytes()).is_null()


class TestFaults:

    @pytest.mark.parametrize("code", [
        b"",
        bytes([OpCode.RETURN]),
        bytes([OpCode.LOAD_IMMEDIATE, 0, ValueTag.NUMBER, 0]),
        assemble(load(0, 1)),
        assemble((OpCode.JUMP, 100)),
    ])
    def test_truncated(self, code):
        with pytest.raises(TruncatedBytecodeError):
            run(code)

    @pytest.mark.parametrize("byte", [0x16, 0x7F, 0xFF])
    def test_unknown_opcode(self, byte):
        with pytest.raises(InvalidOpcodeError) as info:
            run(assemble(load(0, 1)) + bytes([byte]))
        assert info.value.pc == 7
        assert f"0x{byte:02x}" in str(info.value)

    def test_set_field_is_reserved(self):
        with pytest.raises(InvalidOpcodeError):
            run(assemble((OpCode.SET_FIELD, 0, 0, 0), (OpCode.HALT,)))

    def test_register_out_of_range(self):
        with pytest.raises(RegisterIndexError, match=f"r{NUM_REGISTERS}"):
            run(bytes([OpCode.RETURN, NUM_REGISTERS, OpCode.HALT]))

    def test_local_out_of_range(self):
        with pytest.raises(RegisterIndexError, match="Local index"):
            run(assemble((OpCode.LOAD_LOCAL, 16, 0), (OpCode.HALT,)))


class TestCalls:

    def test_nested_call(self):
        vm = VM()
        # proc 2: return arg0 * arg1
        vm.add_program(2, assemble(
            (OpCode.LOAD_ARGUMENT, 0, 0), (OpCode.LOAD_ARGUMENT, 1, 1),
            (OpCode.MUL, 0, 1, 2), (OpCode.RETURN, 2), (OpCode.HALT,),
        ))
        code = assemble(
            load(0, 6), load(1, 7),
            (OpCode.PUSH, 0), (OpCode.PUSH, 1), (OpCode.CALL, 2, 5),
            (OpCode.RETURN, 5), (OpCode.HALT,),
        )
        assert run(code, vm=vm).as_float() == 42.0
        assert vm.depth == 0
        assert vm.current_pid is None

    def test_call_clears_argument_stack(self):
        vm = VM()
        vm.add_program(2, assemble((OpCode.LOAD_ARGUMENT, 1, 0), (OpCode.RETURN, 0), (OpCode.HALT,)))
        code = assemble(
            load(0, 1), (OpCode.PUSH, 0), (OpCode.PUSH, 0), (OpCode.CALL, 2, 3),
            (OpCode.CALL, 2, 4), (OpCode.RETURN, 4), (OpCode.HALT,),
        )
        # the second call receives no arguments
        assert run(code, vm=vm).is_null()

    def test_native_fallback_once_in_push_order(self):
        host = ObjectModel()
        calls = []

        def record(*args):
            calls.append(args)
            return sum(args)

        host.register_proc(40, record)
        code = assemble(
            load(0, 1), load(1, 2), load(2, 3),
            (OpCode.PUSH, 2), (OpCode.PUSH, 0), (OpCode.PUSH, 1),
            (OpCode.CALL, 40, 0), (OpCode.RETURN, 0), (OpCode.HALT,),
        )
        assert run(code, vm=VM(host)).as_float() == 6.0
        assert calls == [(3.0, 1.0, 2.0)]

    def test_compiled_program_wins_over_native(self):
        host = ObjectModel()
        host.register_proc(1, lambda: 99)
        assert run(assemble(load(0, 1), (OpCode.RETURN, 0), (OpCode.HALT,)), vm=VM(host)).as_float() == 1.0

    def test_unknown_procedure(self):
        with pytest.raises(UnknownProcedureError):
            VM().run_program(123, [])

    def test_unknown_procedure_from_call(self):
        with pytest.raises(UnknownProcedureError):
            run(assemble((OpCode.CALL, 9, 0), (OpCode.HALT,)))

    def test_host_must_return_register(self):
        class BadHost(HostModel):
            def intern_string(self, s):
                return 0

            def get_field(self, handle, field_id):
                return Register.null()

            def call_proc(self, proc_id, args):
                return 5

        with pytest.raises(HostError, match="expected Register"):
            VM(BadHost()).run_program(3, [])

    def test_call_depth_limit(self):
        vm = VM(max_call_depth=10)
        vm.add_program(1, assemble((OpCode.CALL, 1, 0), (OpCode.HALT,)))
        with pytest.raises(CallDepthError, match="limit of 10"):
            vm.run_program(1, [])
        assert vm.depth == 0

    def test_pids_are_monotonic(self):
        vm = VM()
        vm.add_program(1, assemble((OpCode.HALT,)))
        vm.run_program(1)
        vm.run_program(1)
        assert vm._next_pid == 2

    def test_process_starts_null(self):
        process = Process(7, assemble((OpCode.HALT,)))
        assert process.pid == 7
        assert process.get_register(0).is_null()
        assert process.get_local(15).is_null()
        assert process.get_return_value().is_null()


class TestFieldAccess:

    def test_get_field(self):
        host = ObjectModel()
        mob = host.new_object(hp=12)
        code = assemble(
            (OpCode.LOAD_ARGUMENT, 0, 0),
            (OpCode.GET_FIELD, 0, host.intern_string("hp"), 0),
            (OpCode.RETURN, 0), (OpCode.HALT,),
        )
        assert run(code, [mob], vm=VM(host)).as_float() == 12.0

    def test_get_field_on_number(self):
        code = assemble(load(0, 1), (OpCode.GET_FIELD, 0, 0, 0), (OpCode.HALT,))
        with pytest.raises(HostError):
            run(code)


class TestRegistry:

    def test_overwrite_is_logged(self, caplog):
        caplog.set_level(logging.DEBUG, logger="vm.machine")
        vm = VM()
        vm.add_program(1, assemble((OpCode.HALT,)))
        vm.add_program(1, assemble(load(0, 3), (OpCode.RETURN, 0), (OpCode.HALT,)))
        assert "replacing program 1" in caplog.text
        assert vm.run_program(1).as_float() == 3.0

    def test_has_program(self):
        vm = VM()
        assert not vm.has_program(1)
        vm.add_program(1, bytearray([OpCode.HALT]))
        assert vm.has_program(1)
        assert isinstance(vm.programs[1], bytes)

    def test_trace_logs_instructions(self, caplog):
        caplog.set_level(logging.DEBUG, logger="vm.process")
        run(assemble(load(0, 1), (OpCode.HALT,)), vm=VM(trace=True))
        assert "LOAD_IMMEDIATE" in caplog.text
        assert "HALT" in caplog.text

    def test_independent_vms(self):
        a, b = VM(), VM()
        a.add_program(1, assemble((OpCode.HALT,)))
        assert not b.has_program(1)
