"""
Tests for the in-process host object model.
"""

import pytest
from vm import ObjectModel, Register, ValueTag, HostError, UnknownProcedureError


class TestStrings:

    def test_intern_is_idempotent(self):
        host = ObjectModel()
        a = host.intern_string("health")
        b = host.intern_string("mana")
        assert host.intern_string("health") == a
        assert a != b
        assert host.get_string(b) == "mana"

    def test_unknown_string_id(self):
        with pytest.raises(HostError, match="Unknown string id"):
            ObjectModel().get_string(3)


class TestObjects:

    def test_fields(self):
        host = ObjectModel()
        mob = host.new_object(health=30, name="orc")
        assert mob.tag == ValueTag.DATUM
        assert host.get_field(mob, host.intern_string("health")) == Register.number(30)
        name = host.get_field(mob, host.intern_string("name"))
        assert host.to_python(name) == "orc"

    def test_missing_field_is_null(self):
        host = ObjectModel()
        mob = host.new_object()
        assert host.get_field(mob, host.intern_string("nothing")).is_null()

    def test_set_field_overwrites(self):
        host = ObjectModel()
        mob = host.new_object(hp=1)
        host.set_field(mob, "hp", 2)
        assert host.to_python(host.get_field(mob, host.intern_string("hp"))) == 2.0

    def test_list_tagged_object(self):
        host = ObjectModel()
        items = host.new_object(ValueTag.LIST, count=3)
        assert items.tag == ValueTag.LIST
        assert host.to_python(host.get_field(items, host.intern_string("count"))) == 3.0

    @pytest.mark.parametrize("handle", [
        Register.number(1.0),
        Register.null(),
        Register(ValueTag.STRING, 0),
    ])
    def test_field_of_non_object(self, handle):
        with pytest.raises(HostError, match="Cannot access fields"):
            ObjectModel().get_field(handle, 0)

    def test_unknown_object(self):
        with pytest.raises(HostError, match="Unknown object id"):
            ObjectModel().get_field(Register(ValueTag.DATUM, 99), 0)

    def test_non_object_tag(self):
        with pytest.raises(HostError):
            ObjectModel().new_object(ValueTag.NUMBER)


class TestNativeProcs:

    def test_call_converts_both_ways(self):
        host = ObjectModel()
        seen = []

        def native(*args):
            seen.append(args)
            return args[0] + args[1]

        host.register_proc(5, native)
        result = host.call_proc(5, [Register.number(2), Register.number(3)])
        assert seen == [(2.0, 3.0)]
        assert result == Register.number(5)

    def test_name_defaults_to_function_name(self):
        host = ObjectModel()

        def shout():
            return None

        assert host.register_proc(1, shout).name == "shout"
        assert host.get_proc(1).func is shout

    def test_unknown_proc(self):
        with pytest.raises(UnknownProcedureError) as info:
            ObjectModel().call_proc(12, [])
        assert info.value.proc_id == 12
        assert "Unknown procedure id: 12" in str(info.value)


class TestConversion:

    @pytest.mark.parametrize("value,expected", [
        (None, Register.null()),
        (True, Register.number(1.0)),
        (3, Register.number(3.0)),
        (-0.5, Register.number(-0.5)),
    ])
    def test_from_python(self, value, expected):
        assert ObjectModel().from_python(value) == expected

    def test_string_round_trip(self):
        host = ObjectModel()
        reg = host.from_python("abc")
        assert reg.tag == ValueTag.STRING
        assert host.to_python(reg) == "abc"

    def test_register_passes_through(self):
        host = ObjectModel()
        mob = host.new_object()
        assert host.from_python(mob) is mob
        assert host.to_python(mob) is mob

    def test_unconvertible(self):
        with pytest.raises(TypeError):
            ObjectModel().from_python([1, 2])
