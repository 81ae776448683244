"""
Unit tests for the flag applier.
"""

from hardenkit.core.interfaces import TargetKind
from hardenkit.engine.applier import FlagApplier, property_as_list
from hardenkit.engine.targets import BuildScope, Target


class CountingTarget(Target):
    """Target that counts property writes."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.writes = 0

    def set_property(self, property_name, value):
        self.writes += 1
        super().set_property(property_name, value)


class TestPropertyAsList:
    """Test property value normalization."""

    def test_values(self):
        assert property_as_list(None) == []
        assert property_as_list("COMPILE_OPTIONS-NOTFOUND") == []
        assert property_as_list("-O2;-g") == ["-O2", "-g"]
        assert property_as_list(("-O2",)) == ["-O2"]


class TestApply:
    """Test merging flags into properties."""

    def test_append_to_missing_property(self):
        """Test a missing property is treated as empty."""
        target = Target("app")

        added = FlagApplier().apply(target, "LINK_OPTIONS", ["-pie", "-Wl,-z,now"])

        assert added == ["-pie", "-Wl,-z,now"]
        assert target.link_options == ["-pie", "-Wl,-z,now"]

    def test_existing_flags_keep_order(self):
        """Test existing entries are never reordered or removed."""
        target = Target("app", properties={"COMPILE_OPTIONS": ["-O2", "-Wall", "-g"]})

        added = FlagApplier().apply(target, "COMPILE_OPTIONS", ["-Wall", "-Wextra"])

        assert added == ["-Wextra"]
        assert target.compile_options == ["-O2", "-Wall", "-g", "-Wextra"]

    def test_duplicates_within_input(self):
        """Test repeated input flags are appended once."""
        target = Target("app")

        FlagApplier().apply(target, "COMPILE_OPTIONS", ["-Wall", "-Wall"])

        assert target.compile_options == ["-Wall"]

    def test_single_write(self):
        """Test the property is written once per call."""
        target = CountingTarget("app")

        FlagApplier().apply(target, "COMPILE_OPTIONS", ["-a", "-b", "-c"])

        assert target.writes == 1

    def test_nothing_new_means_no_write(self):
        """Test no write happens when every flag is present."""
        target = CountingTarget("app", properties={"COMPILE_OPTIONS": ["-a"]})

        FlagApplier().apply(target, "COMPILE_OPTIONS", ["-a"])

        assert target.writes == 0

    def test_group_ledger_makes_repeat_noop(self):
        """Test a group is applied once per target and property."""
        applier = FlagApplier()
        target = Target("app")

        applier.apply(target, "COMPILE_OPTIONS", ["-Wall"], group="warnings")
        second = applier.apply(target, "COMPILE_OPTIONS", ["-Wextra"], group="warnings")

        assert second == []
        assert target.compile_options == ["-Wall"]
        assert applier.has_applied(target, "COMPILE_OPTIONS", "warnings")

    def test_ledger_is_per_target_and_property(self):
        """Test one target's ledger entry does not affect another target."""
        applier = FlagApplier()
        app = Target("app")
        lib = Target("lib", TargetKind.SHARED_LIBRARY)

        applier.apply(app, "COMPILE_OPTIONS", ["-Wall"], group="warnings")
        applier.apply(lib, "COMPILE_OPTIONS", ["-Wall"], group="warnings")
        applier.apply(app, "LINK_OPTIONS", ["-pie"], group="warnings")

        assert lib.compile_options == ["-Wall"]
        assert app.link_options == ["-pie"]
        assert app.compile_options == ["-Wall"]

    def test_scope_and_target_with_same_name_are_distinct(self):
        """Test a target named like the global scope still receives flags."""
        applier = FlagApplier()
        scope = BuildScope()
        target = Target(scope.name)

        applier.apply(scope, "COMPILE_OPTIONS", ["-flto"], group="lto")
        added = applier.apply(target, "COMPILE_OPTIONS", ["-flto"], group="lto")

        assert added == ["-flto"]
        assert target.compile_options == ["-flto"]
        assert applier.has_applied(scope, "COMPILE_OPTIONS", "lto")
        assert applier.has_applied(target, "COMPILE_OPTIONS", "lto")

    def test_reset(self):
        """Test reset forgets the ledger."""
        applier = FlagApplier()
        target = Target("app")
        applier.apply(target, "COMPILE_OPTIONS", ["-Wall"], group="warnings")

        applier.reset()

        assert not applier.has_applied(target, "COMPILE_OPTIONS", "warnings")

    def test_string_property(self):
        """Test semicolon-separated properties are extended as lists."""
        target = Target("app", properties={"COMPILE_OPTIONS": "-O2;-g"})

        FlagApplier().apply(target, "COMPILE_OPTIONS", ["-Wall"])

        assert target.get_property("COMPILE_OPTIONS") == ["-O2", "-g", "-Wall"]
