"""
Tests for the simulation controller.

The controller owns the process registry and the active allocator; these
tests drive it the way the UI does, through commands and snapshots.
"""

import pytest

from engine import (
    KIB,
    MIB,
    AllocationFailure,
    FitAlgorithm,
    InvalidProcessSize,
    Mode,
    ProcessAlreadyAllocated,
)
from simulation import DEFAULT_PROCESS_SIZES, SimulationController


def assert_snapshots_agree(ctl):
    """Every allocated process is backed by exactly one region it owns, and no other."""
    regions = ctl.region_snapshot()
    for proc in ctl.process_snapshot():
        assert proc.allocated == (proc.region_ref is not None)
        owned = [r for r in regions if r.owner_id == proc.pid]
        if not proc.allocated:
            assert owned == []
            continue
        assert len(owned) == 1 and owned[0].occupied
        if ctl.mode == Mode.STATIC:
            assert owned[0].partition_id == proc.region_ref
        else:
            assert owned[0].start == proc.region_ref
            assert owned[0].size == proc.size


@pytest.fixture
def controller():
    return SimulationController()


@pytest.fixture
def dynamic():
    return SimulationController(mode=Mode.DYNAMIC, fit=FitAlgorithm.FIRST, coalesce=True)


class TestConstruction:
    """Initial controller state."""

    def test_defaults_to_static(self, controller):
        """Static mode with five free partitions and no processes."""
        assert controller.mode == Mode.STATIC
        assert len(controller.region_snapshot()) == 5
        assert controller.process_snapshot() == []

    def test_dynamic_starts_with_one_block(self, dynamic):
        """Dynamic mode covers the usable space with one free block."""
        regions = dynamic.region_snapshot()
        assert len(regions) == 1
        assert regions[0].size == 16 * MIB and not regions[0].occupied

    def test_reserved_prefix_is_excluded(self):
        """Usable space starts after the reserved prefix."""
        ctl = SimulationController(total_size=16 * MIB, reserved=2 * MIB, mode=Mode.DYNAMIC)
        regions = ctl.region_snapshot()
        assert regions[0].start == 2 * MIB
        assert regions[0].size == 14 * MIB
        assert ctl.usable_size == 14 * MIB

    def test_static_partitions_must_cover_usable_space(self):
        """Default partitions do not fit a memory with a reserved prefix."""
        with pytest.raises(ValueError):
            SimulationController(total_size=16 * MIB, reserved=1 * MIB, mode=Mode.STATIC)

    def test_custom_partitions_with_reserved_prefix(self):
        """Custom partitions that cover the usable space are accepted."""
        ctl = SimulationController(total_size=4 * MIB, reserved=1 * MIB,
                                   partition_sizes=[1 * MIB, 2 * MIB])
        assert [r.start for r in ctl.region_snapshot()] == [1 * MIB, 2 * MIB]

    @pytest.mark.parametrize("total, reserved", [(0, 0), (MIB, MIB), (MIB, -1)])
    def test_bad_memory_sizes(self, total, reserved):
        """Total must be positive and leave usable space after the prefix."""
        with pytest.raises(ValueError):
            SimulationController(total_size=total, reserved=reserved, mode=Mode.DYNAMIC)

    def test_unknown_mode(self):
        """Only static and dynamic modes exist."""
        with pytest.raises(ValueError):
            SimulationController(mode="paging")


class TestAddProcess:
    """Process creation through the controller."""

    def test_registry_keeps_creation_order(self, controller):
        """Snapshots list processes in the order they were added."""
        for size in (300, 100, 200):
            controller.add_process(size)
        assert [p.size for p in controller.process_snapshot()] == [300, 100, 200]
        assert [p.name for p in controller.process_snapshot()] == ["Process 0", "Process 1", "Process 2"]

    @pytest.mark.parametrize("bad", [0, -1, float("nan"), "abc"])
    def test_invalid_size(self, controller, bad):
        """Invalid sizes raise and register nothing."""
        with pytest.raises(InvalidProcessSize):
            controller.add_process(bad)
        assert controller.process_snapshot() == []

    def test_default_processes(self, controller):
        """The default workload adds five processes."""
        processes = controller.load_default_processes()
        assert [p.size for p in processes] == DEFAULT_PROCESS_SIZES
        assert processes[1].size == 1572864

    def test_creation_is_logged(self, controller):
        """Each new process appears in the event log."""
        controller.add_process(512 * KIB)
        assert controller.event_log[-1] == "Created: Process 0 (512 KiB)"


class TestAllocation:
    """Allocate and deallocate commands."""

    def test_static_scenario(self, controller):
        """1.5 MiB goes to the 2 MiB partition, 3 MiB to the 4 MiB partition."""
        p1 = controller.add_process(1.5 * MIB)
        p2 = controller.add_process(3 * MIB)
        controller.allocate(p1.pid)
        controller.allocate(p2.pid)

        regions = controller.region_snapshot()
        assert regions[1].owner_name == p1.name
        assert regions[2].owner_name == p2.name
        assert [p.allocated for p in controller.process_snapshot()] == [True, True]

    def test_allocation_failure_surfaces(self, controller):
        """A request nothing can hold raises and leaves the process unallocated."""
        process = controller.add_process(9 * MIB)
        with pytest.raises(AllocationFailure):
            controller.allocate(process.pid)
        assert controller.process_snapshot()[0].allocated is False
        assert controller.event_log[-1].startswith("Failed: Process 0")

    def test_controller_usable_after_failure(self, controller):
        """Later commands work normally after a failed allocation."""
        big = controller.add_process(9 * MIB)
        with pytest.raises(AllocationFailure):
            controller.allocate(big.pid)
        small = controller.add_process(1 * MIB)
        assert controller.allocate(small.pid).size == 1 * MIB

    def test_exactly_one_region_per_process(self, dynamic):
        """After allocation the process owns exactly one region of its size."""
        process = dynamic.add_process(700 * KIB)
        dynamic.allocate(process.pid)
        owned = [r for r in dynamic.region_snapshot() if r.owner_id == process.pid]
        assert len(owned) == 1
        assert owned[0].size == 700 * KIB
        assert dynamic.process_snapshot()[0].region_ref == owned[0].start

    def test_reallocating_is_rejected(self, dynamic):
        """Allocating an allocated process raises instead of taking a second block."""
        process = dynamic.add_process(1 * MIB)
        dynamic.allocate(process.pid)
        with pytest.raises(ProcessAlreadyAllocated):
            dynamic.allocate(process.pid)

    def test_unknown_ids_are_ignored(self, dynamic):
        """Commands for ids the registry does not know do nothing."""
        assert dynamic.allocate(42) is None
        assert dynamic.deallocate(42) is None
        assert len(dynamic.region_snapshot()) == 1

    def test_deallocate_is_idempotent(self, dynamic):
        """A second deallocation has no further effect."""
        process = dynamic.add_process(1 * MIB)
        dynamic.allocate(process.pid)
        dynamic.deallocate(process.pid)
        snapshot = dynamic.region_snapshot()
        log_length = len(dynamic.event_log)

        assert dynamic.deallocate(process.pid) is None
        assert dynamic.region_snapshot() == snapshot
        assert len(dynamic.event_log) == log_length

    def test_coalescing_is_logged(self, dynamic):
        """Merges after a deallocation are reported in the event log."""
        process = dynamic.add_process(1 * MIB)
        dynamic.allocate(process.pid)
        dynamic.deallocate(process.pid)
        assert dynamic.event_log[-2] == "Deallocated: Process 0"
        assert dynamic.event_log[-1].startswith("Coalesced: 1")
        assert len(dynamic.region_snapshot()) == 1

    @pytest.mark.parametrize("mode", [Mode.STATIC, Mode.DYNAMIC])
    def test_snapshots_agree_through_workload(self, mode):
        """Process and region snapshots stay in step after every command."""
        ctl = SimulationController(mode=mode, coalesce=True)
        procs = ctl.load_default_processes()
        steps = [("alloc", p) for p in procs]
        steps += [("free", procs[1]), ("free", procs[3]), ("alloc", procs[3]), ("free", procs[0])]

        for action, process in steps:
            if action == "alloc":
                try:
                    ctl.allocate(process.pid)
                except AllocationFailure:
                    pass
            else:
                ctl.deallocate(process.pid)
            ctl.allocator.verify()
            assert_snapshots_agree(ctl)

    def test_huge_size_is_registered(self, controller):
        """A size beyond float range is a valid process that simply does not fit."""
        process = controller.add_process(10 ** 400)
        assert controller.process_snapshot()[0].size == 10 ** 400
        with pytest.raises(AllocationFailure):
            controller.allocate(process.pid)

    def test_input_layer_aliases(self, dynamic):
        """request_allocate and request_deallocate route to the same commands."""
        process = dynamic.add_process(1 * MIB)
        dynamic.request_allocate(process.pid)
        assert process.allocated
        dynamic.request_deallocate(process.pid)
        assert not process.allocated


class TestModeSwitching:
    """Mode and option changes reset memory."""

    def allocate_all(self, ctl):
        for p in ctl.processes:
            try:
                ctl.allocate(p.pid)
            except AllocationFailure:
                pass

    @pytest.mark.parametrize("start, target", [
        (Mode.STATIC, Mode.DYNAMIC),
        (Mode.DYNAMIC, Mode.STATIC),
        (Mode.STATIC, Mode.STATIC),
    ])
    def test_switch_clears_allocations(self, start, target):
        """Every process ends up unallocated and memory is back to its initial layout."""
        ctl = SimulationController(mode=start)
        ctl.load_default_processes()
        self.allocate_all(ctl)
        assert any(p.allocated for p in ctl.process_snapshot())

        ctl.switch_mode(target)

        assert not any(p.allocated for p in ctl.process_snapshot())
        assert not any(p.region_ref is not None for p in ctl.process_snapshot())
        assert not any(r.occupied for r in ctl.region_snapshot())
        expected = 5 if target == Mode.STATIC else 1
        assert len(ctl.region_snapshot()) == expected
        ctl.allocator.verify()

    def test_processes_survive_switch(self, controller):
        """The registry is kept across mode switches."""
        controller.load_default_processes()
        controller.set_mode(Mode.DYNAMIC)
        assert len(controller.process_snapshot()) == 5

    def test_dynamic_options_reset_memory(self, dynamic):
        """Changing the fit algorithm rebuilds memory with the new options."""
        process = dynamic.add_process(1 * MIB)
        dynamic.allocate(process.pid)

        dynamic.set_dynamic_options(FitAlgorithm.BEST, False)

        assert dynamic.allocator.fit == FitAlgorithm.BEST
        assert dynamic.allocator.coalesce_enabled is False
        assert not process.allocated
        assert len(dynamic.region_snapshot()) == 1

    def test_options_kept_for_later_dynamic_switch(self, controller):
        """Options set in static mode apply when switching to dynamic."""
        controller.set_dynamic_options(FitAlgorithm.WORST, False)
        assert controller.mode == Mode.STATIC
        controller.set_mode(Mode.DYNAMIC)
        assert controller.allocator.fit == FitAlgorithm.WORST
        assert controller.allocator.coalesce_enabled is False

    def test_unknown_fit(self, dynamic):
        """Bad fit names raise and leave the current allocator in place."""
        allocator = dynamic.allocator
        with pytest.raises(ValueError):
            dynamic.set_dynamic_options("next", True)
        assert dynamic.allocator is allocator

    def test_reset(self, dynamic):
        """Reset keeps the mode and options but frees everything."""
        dynamic.set_dynamic_options(FitAlgorithm.WORST, True)
        process = dynamic.add_process(1 * MIB)
        dynamic.allocate(process.pid)

        dynamic.reset()

        assert dynamic.mode == Mode.DYNAMIC
        assert dynamic.fit == FitAlgorithm.WORST
        assert not process.allocated
        assert dynamic.event_log[-1] == "Memory reset: dynamic, worst-fit, coalescing on"

    def test_log_survives_reset(self, dynamic):
        """The event log is kept until cleared explicitly."""
        dynamic.add_process(10)
        dynamic.reset()
        assert any(e.startswith("Created") for e in dynamic.event_log)
        dynamic.clear_log()
        assert dynamic.event_log == []


class TestFitScenario:
    """Fit selection driven through the controller."""

    @pytest.mark.parametrize("fit, expected_hole", [
        (FitAlgorithm.FIRST, 1),
        (FitAlgorithm.BEST, 2),
        (FitAlgorithm.WORST, 1),
    ])
    def test_600k_request(self, fit, expected_hole):
        """Holes of 512 KiB, 2 MiB and 1 MiB; a 600 KiB request picks per fit."""
        ctl = SimulationController(total_size=4 * MIB, mode=Mode.DYNAMIC, fit=fit, coalesce=False)
        hole_sizes = [512 * KIB, 2 * MIB, 1 * MIB]
        holes = []
        for size in hole_sizes:
            hole = ctl.add_process(size)
            ctl.allocate(hole.pid)
            holes.append(hole)
            ctl.allocate(ctl.add_process(128 * KIB).pid)
        hole_starts = [h.region_ref for h in holes]
        for hole in holes:
            ctl.deallocate(hole.pid)

        region = ctl.allocate(ctl.add_process(600 * KIB).pid)

        assert region.start == hole_starts[expected_hole]


class TestMetrics:
    """Statistics exposed to the presentation layer."""

    def test_metrics_follow_allocations(self, dynamic):
        """Utilization reflects allocated bytes."""
        process = dynamic.add_process(4 * MIB)
        dynamic.allocate(process.pid)
        stats = dynamic.fragmentation_metrics()
        assert stats["utilization"] == 0.25
        assert stats["free_bytes"] == 12 * MIB
