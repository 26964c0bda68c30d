"""
Simulation controller for the memory partitioning visualizer.

Owns the process registry and the active allocator, and is the only thing
the UI talks to. Every command runs to completion before returning; errors
from the engine are passed straight back to the caller.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from engine import (
    KIB,
    MIB,
    TOTAL_MEMORY,
    AllocationFailure,
    Allocator,
    DynamicAllocator,
    FitAlgorithm,
    Mode,
    Process,
    ProcessRegistry,
    Region,
    StaticAllocator,
    fragmentation_metrics,
)
from utils import format_bytes

DEFAULT_PROCESS_SIZES = [
    512 * KIB,
    int(1.5 * MIB),
    3 * MIB,
    700 * KIB,
    6 * MIB,
]


@dataclass(frozen=True)
class RegionView:
    """Read-only copy of a region for the presentation layer."""
    start: int
    size: int
    occupied: bool
    owner_id: Optional[int] = None
    owner_name: Optional[str] = None
    partition_id: Optional[int] = None


@dataclass(frozen=True)
class ProcessView:
    """Read-only copy of a process for the presentation layer."""
    pid: int
    name: str
    size: int
    allocated: bool
    region_ref: Optional[int] = None


class SimulationController:
    """
    Routes commands from the input layer to the active allocator.

    Attributes:
        total_size (int): Size of the whole simulated memory in bytes
        reserved (int): Bytes at the bottom of memory kept out of allocation
        partition_sizes (List[int]): Partition sizes used in static mode
        mode (str): Mode.STATIC or Mode.DYNAMIC
        fit (str): Fit algorithm used in dynamic mode
        coalesce (bool): Whether dynamic mode merges free blocks on deallocation
        processes (ProcessRegistry): Every process created this session
        allocator (Allocator): The allocator for the current mode
        event_log (List[str]): Human readable history of commands
    """

    def __init__(self, total_size: int = TOTAL_MEMORY, reserved: int = 0,
                 mode: str = Mode.STATIC, fit: str = FitAlgorithm.FIRST,
                 coalesce: bool = True, partition_sizes: Optional[List[int]] = None):
        if total_size <= 0:
            raise ValueError("Total memory size must be positive")
        if reserved < 0 or reserved >= total_size:
            raise ValueError("Reserved prefix must leave some usable memory")

        self.total_size = total_size
        self.reserved = reserved
        self.partition_sizes = partition_sizes
        self.processes = ProcessRegistry()
        self.event_log: List[str] = []

        self.mode = None
        self.fit = FitAlgorithm.FIRST
        self.coalesce = True
        self.allocator: Allocator = None
        self.switch_mode(mode, fit, coalesce)

    @property
    def usable_size(self) -> int:
        return self.total_size - self.reserved

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    def switch_mode(self, mode: str, fit: Optional[str] = None, coalesce: Optional[bool] = None):
        """
        Rebuild memory for the given mode and unallocate every process.

        Existing allocations are not migrated; the new allocator starts with
        all partitions free (static) or one free block (dynamic).

        Raises:
            ValueError: for an unknown mode or fit algorithm, or static
                partitions that do not cover the usable space
        """
        if mode not in Mode.ALL:
            raise ValueError(f"Unknown mode: {mode!r}")
        fit = self.fit if fit is None else fit
        coalesce = self.coalesce if coalesce is None else bool(coalesce)
        if fit not in FitAlgorithm.ALL:
            raise ValueError(f"Unknown fit algorithm: {fit!r}")

        self.allocator = self._build_allocator(mode, fit, coalesce)
        self.mode = mode
        self.fit = fit
        self.coalesce = coalesce
        self.processes.reset_allocations()

        if mode == Mode.STATIC:
            self.event_log.append(f"Memory reset: static partitions ({len(self.allocator.regions)})")
        else:
            state = "on" if coalesce else "off"
            self.event_log.append(f"Memory reset: dynamic, {fit}-fit, coalescing {state}")

    def _build_allocator(self, mode: str, fit: str, coalesce: bool) -> Allocator:
        if mode == Mode.STATIC:
            allocator = StaticAllocator(self.partition_sizes, base=self.reserved)
            if allocator.usable_size != self.usable_size:
                raise ValueError(
                    f"Static partitions cover {allocator.usable_size} bytes, "
                    f"usable memory is {self.usable_size} bytes")
            return allocator
        return DynamicAllocator(self.usable_size, fit, coalesce, base=self.reserved)

    def set_mode(self, mode: str):
        self.switch_mode(mode)

    def set_dynamic_options(self, fit: str, coalesce: bool):
        """Change fit/coalescing. Memory is rebuilt whatever the current mode."""
        self.switch_mode(self.mode, fit, coalesce)

    def reset(self):
        self.switch_mode(self.mode)

    # =========================================================================
    # PROCESS COMMANDS
    # =========================================================================

    def add_process(self, size_bytes) -> Process:
        """
        Register a new process.

        Raises:
            InvalidProcessSize: if size_bytes is not a finite positive number
        """
        process = self.processes.add(size_bytes)
        self.event_log.append(f"Created: {process.name} ({format_bytes(process.size)})")
        return process

    def load_default_processes(self) -> List[Process]:
        return [self.add_process(size) for size in DEFAULT_PROCESS_SIZES]

    def allocate(self, pid) -> Optional[Region]:
        """
        Allocate the process with the given id in the active allocator.

        Returns the region now backing the process, or None for an unknown id.

        Raises:
            AllocationFailure: if nothing fits; the process stays unallocated
            ProcessAlreadyAllocated: if the process already owns a region
        """
        process = self.processes.get(pid)
        if process is None:
            return None

        try:
            region = self.allocator.allocate(process)
        except AllocationFailure:
            self.event_log.append(f"Failed: {process.name} ({format_bytes(process.size)}) does not fit")
            raise

        self.event_log.append(
            f"Allocated: {process.name} -> {format_bytes(region.size)} at 0x{region.start:08x}")
        return region

    def deallocate(self, pid) -> Optional[Region]:
        """Free the region owned by pid. Unknown or unallocated ids are ignored."""
        process = self.processes.get(pid)
        if process is None:
            return None

        before = len(self.allocator.regions)
        region = self.allocator.deallocate(pid)
        if region is None:
            return None

        self.event_log.append(f"Deallocated: {process.name}")
        merged = before - len(self.allocator.regions)
        if merged:
            self.event_log.append(f"Coalesced: {merged} adjacent free block(s) merged")
        return region

    # Names used by the input layer
    request_allocate = allocate
    request_deallocate = deallocate

    # =========================================================================
    # QUERIES
    # =========================================================================

    def region_snapshot(self) -> List[RegionView]:
        views = []
        for region in self.allocator.regions:
            owner = self.processes.get(region.owner) if region.occupied else None
            views.append(RegionView(
                start=region.start,
                size=region.size,
                occupied=region.occupied,
                owner_id=region.owner,
                owner_name=owner.name if owner is not None else None,
                partition_id=region.partition_id,
            ))
        return views

    def process_snapshot(self) -> List[ProcessView]:
        return [
            ProcessView(p.pid, p.name, p.size, p.allocated, p.region_ref)
            for p in self.processes
        ]

    def fragmentation_metrics(self) -> Dict[str, float]:
        return fragmentation_metrics(self.allocator)

    def clear_log(self):
        self.event_log = []
