# engine.py

import math
from dataclasses import dataclass
from numbers import Integral, Real
from typing import Callable, Dict, Iterator, List, Optional

KIB = 1024
MIB = 1024 * KIB

TOTAL_MEMORY = 16 * MIB
STATIC_PARTITION_SIZES = [1 * MIB, 2 * MIB, 4 * MIB, 8 * MIB, 1 * MIB]


class Mode:
    """Partitioning strategies the simulator can run."""
    STATIC = "static"
    DYNAMIC = "dynamic"

    ALL = (STATIC, DYNAMIC)


class FitAlgorithm:
    """Rules for picking a free block in dynamic mode."""
    FIRST = "first"
    BEST = "best"
    WORST = "worst"

    ALL = (FIRST, BEST, WORST)


# -----------------------------
# Errors
# -----------------------------
class SimulationError(Exception):
    """Base class for errors raised by the simulation core"""
    pass


class InvalidProcessSize(SimulationError, ValueError):
    """Raised when a process size is not a finite positive number"""
    pass


class AllocationFailure(SimulationError):
    """Raised when no region can hold the requested process"""

    def __init__(self, process, message):
        super().__init__(message)
        self.process = process


class ProcessAlreadyAllocated(SimulationError):
    """Raised when allocating a process that already owns a region"""
    pass


class LayoutError(SimulationError):
    """Raised when the region list no longer tiles the usable space"""
    pass


# -----------------------------
# Data model
# -----------------------------
@dataclass
class Process:
    pid: int
    size: int
    name: str = ""
    allocated: bool = False
    # partition id (static) or block start address (dynamic)
    region_ref: Optional[int] = None

    def __post_init__(self):
        if not self.name:
            self.name = f"Process {self.pid}"

    def mark_allocated(self, ref: int):
        self.allocated = True
        self.region_ref = ref

    def mark_free(self):
        self.allocated = False
        self.region_ref = None


@dataclass
class Region:
    start: int
    size: int
    occupied: bool = False
    owner: Optional[int] = None
    partition_id: Optional[int] = None

    @property
    def end(self) -> int:
        return self.start + self.size

    @property
    def free(self) -> bool:
        return not self.occupied

    def __repr__(self):
        state = "A" if self.occupied else "F"
        return f"[{state}|{self.start}|{self.size}]"


def validate_size(size_bytes) -> int:
    """
    Turn a size coming from the input layer into a whole number of bytes.

    Accepts ints and floats; fractional byte counts are rounded up.

    Raises:
        InvalidProcessSize: for non-numbers, NaN, infinities, zero or negatives
    """
    if isinstance(size_bytes, bool) or not isinstance(size_bytes, Real):
        raise InvalidProcessSize(f"Process size must be a number, got {size_bytes!r}")
    # ints of any magnitude are finite; converting them to float can overflow
    if isinstance(size_bytes, Integral):
        if size_bytes <= 0:
            raise InvalidProcessSize(f"Process size must be a finite positive number, got {size_bytes!r}")
        return int(size_bytes)
    if not math.isfinite(size_bytes) or size_bytes <= 0:
        raise InvalidProcessSize(f"Process size must be a finite positive number, got {size_bytes!r}")
    return int(math.ceil(size_bytes))


class ProcessRegistry:
    """Simulated processes in creation order. Processes are never removed."""

    def __init__(self):
        self._processes: Dict[int, Process] = {}
        self.next_id = 0

    def add(self, size_bytes) -> Process:
        size = validate_size(size_bytes)
        process = Process(self.next_id, size)
        self._processes[process.pid] = process
        self.next_id += 1
        return process

    def get(self, pid) -> Optional[Process]:
        return self._processes.get(pid)

    def reset_allocations(self):
        for process in self._processes.values():
            process.mark_free()

    def __iter__(self) -> Iterator[Process]:
        return iter(self._processes.values())

    def __len__(self):
        return len(self._processes)


# -----------------------------
# Fit algorithms
# -----------------------------
# Each takes the block list and a request and returns the index of the chosen
# free block, or None. Ties go to the lowest address.
def first_fit(blocks: List[Region], req: int) -> Optional[int]:
    for i, block in enumerate(blocks):
        if block.free and block.size >= req:
            return i
    return None


def best_fit(blocks: List[Region], req: int) -> Optional[int]:
    best_index = None
    best_diff = float('inf')

    for i, block in enumerate(blocks):
        if block.free and block.size >= req and block.size - req < best_diff:
            best_diff = block.size - req
            best_index = i

    return best_index


def worst_fit(blocks: List[Region], req: int) -> Optional[int]:
    worst_index = None
    worst_diff = -1

    for i, block in enumerate(blocks):
        if block.free and block.size >= req and block.size - req > worst_diff:
            worst_diff = block.size - req
            worst_index = i

    return worst_index


FIT_FUNCTIONS: Dict[str, Callable[[List[Region], int], Optional[int]]] = {
    FitAlgorithm.FIRST: first_fit,
    FitAlgorithm.BEST: best_fit,
    FitAlgorithm.WORST: worst_fit,
}


# -----------------------------
# Allocators
# -----------------------------
class Allocator:
    """
    Shared region list plus the allocate/deallocate contract.

    The region list always tiles [base, base + usable_size) exactly. Processes
    placed by allocate() are remembered so deallocate() can clear them.
    """

    def __init__(self, usable_size: int, base: int = 0):
        if usable_size <= 0:
            raise ValueError("Usable memory size must be positive")
        if base < 0:
            raise ValueError("Base address must be non-negative")
        self.usable_size = usable_size
        self.base = base
        self.owners: Dict[int, Process] = {}
        self.regions: List[Region] = []

    def allocate(self, process: Process) -> Region:
        raise NotImplementedError

    def deallocate(self, pid) -> Optional[Region]:
        raise NotImplementedError

    def find_owned(self, pid) -> Optional[int]:
        for i, region in enumerate(self.regions):
            if region.occupied and region.owner == pid:
                return i
        return None

    def _release(self, pid) -> Optional[Region]:
        index = self.find_owned(pid)
        if index is None:
            return None

        region = self.regions[index]
        region.occupied = False
        region.owner = None

        process = self.owners.pop(pid, None)
        if process is not None:
            process.mark_free()
        return region

    def _check_unallocated(self, process: Process):
        if process.allocated or self.find_owned(process.pid) is not None:
            raise ProcessAlreadyAllocated(f"{process.name} is already allocated")

    def free_regions(self) -> List[Region]:
        return [r for r in self.regions if r.free]

    def verify(self):
        """Raise LayoutError unless the regions are ordered, contiguous and cover the usable space."""
        if not self.regions:
            raise LayoutError("Region list is empty")

        expected_start = self.base
        for region in self.regions:
            if region.size <= 0:
                raise LayoutError(f"Region {region!r} has non-positive size")
            if region.start != expected_start:
                raise LayoutError(
                    f"Region {region!r} starts at {region.start}, expected {expected_start}")
            if region.occupied != (region.owner is not None):
                raise LayoutError(f"Region {region!r} occupied flag disagrees with its owner")
            expected_start = region.end

        if expected_start != self.base + self.usable_size:
            raise LayoutError(
                f"Regions end at {expected_start}, expected {self.base + self.usable_size}")


class StaticAllocator(Allocator):
    """Fixed partitions, first-fit, never split or merged."""

    def __init__(self, partition_sizes=None, base: int = 0):
        sizes = list(STATIC_PARTITION_SIZES if partition_sizes is None else partition_sizes)
        if not sizes or any(size <= 0 for size in sizes):
            raise ValueError("Partition sizes must be positive")
        super().__init__(sum(sizes), base)

        address = base
        for index, size in enumerate(sizes):
            self.regions.append(Region(address, size, partition_id=index))
            address += size

    def allocate(self, process: Process) -> Region:
        self._check_unallocated(process)

        for partition in self.regions:
            if partition.free and partition.size >= process.size:
                partition.occupied = True
                partition.owner = process.pid
                process.mark_allocated(partition.partition_id)
                self.owners[process.pid] = process
                return partition

        raise AllocationFailure(process, f"No suitable partition found for {process.name}")

    def deallocate(self, pid) -> Optional[Region]:
        return self._release(pid)


class DynamicAllocator(Allocator):
    """One contiguous space carved into exact-size blocks on demand."""

    def __init__(self, usable_size: int, fit: str = FitAlgorithm.FIRST, coalesce: bool = True,
                 base: int = 0):
        if fit not in FIT_FUNCTIONS:
            raise ValueError(f"Unknown fit algorithm: {fit!r}")
        super().__init__(usable_size, base)
        self.fit = fit
        self.coalesce_enabled = coalesce
        self.regions = [Region(base, usable_size)]

    def allocate(self, process: Process) -> Region:
        self._check_unallocated(process)

        index = FIT_FUNCTIONS[self.fit](self.regions, process.size)
        if index is None:
            raise AllocationFailure(process, f"Not enough contiguous memory for {process.name}")
        return self._split_block(index, process)

    def _split_block(self, index: int, process: Process) -> Region:
        block = self.regions[index]
        remainder = block.size - process.size

        allocated_block = Region(block.start, process.size, True, process.pid)
        self.regions[index] = allocated_block

        if remainder > 0:
            free_block = Region(block.start + process.size, remainder)
            self.regions.insert(index + 1, free_block)

        process.mark_allocated(allocated_block.start)
        self.owners[process.pid] = process
        return allocated_block

    def deallocate(self, pid) -> Optional[Region]:
        block = self._release(pid)
        if block is not None and self.coalesce_enabled:
            self.coalesce()
        return block

    def coalesce(self) -> int:
        """Merge adjacent free blocks until none remain. Returns the number of merges."""
        merges = 0
        i = 0
        while i < len(self.regions) - 1:
            current = self.regions[i]
            nxt = self.regions[i + 1]
            if current.free and nxt.free:
                current.size += nxt.size
                del self.regions[i + 1]
                merges += 1
            else:
                i += 1
        return merges


# --------------------------------------
# Fragmentation Metrics
# --------------------------------------
def fragmentation_metrics(allocator: Allocator) -> Dict[str, float]:
    free_blocks = [r.size for r in allocator.free_regions()]
    occupied = [r for r in allocator.regions if r.occupied]

    total_free = sum(free_blocks)
    largest_free = max(free_blocks) if free_blocks else 0

    # external = 1 - (largest_free_block / total_free)
    if total_free == 0:
        external_frag = 0
    else:
        external_frag = 1 - (largest_free / total_free)

    # internal = bytes inside occupied regions not used by their process
    occupied_bytes = sum(r.size for r in occupied)
    requested = 0
    for region in occupied:
        process = allocator.owners.get(region.owner)
        requested += process.size if process is not None else region.size
    internal_frag = (occupied_bytes - requested) / occupied_bytes if occupied_bytes else 0

    utilization = requested / allocator.usable_size

    return {
        "external": round(external_frag, 4),
        "internal": round(internal_frag, 4),
        "utilization": round(utilization, 4),
        "free_bytes": total_free,
        "largest_free": largest_free,
        "free_regions": len(free_blocks),
    }
