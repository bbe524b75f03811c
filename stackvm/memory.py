"""
Stack VM — Flat Cell Memory

Fixed-size, zero-initialised array of integer cells:

  0 .. len(image)-1      Program image (loaded at address 0)
  len(image) .. cap-1    Data cells for STORE / LOAD

Every access is bounds-checked. Python's negative indexing would otherwise
turn address -1 into the last cell, so negative addresses are rejected
explicitly. Memory is never resized after construction.
"""

from typing import Dict, List, Optional, Sequence, Tuple

from .errors import AddressOutOfRange, ProgramTooLarge


class Memory:
    """Word-addressable memory of unbounded Python ints."""

    def __init__(self, capacity: int):
        if capacity < 0:
            raise ValueError(f"memory capacity must be >= 0, got {capacity}")
        self._cells: List[int] = [0] * capacity

    @property
    def capacity(self) -> int:
        return len(self._cells)

    def __len__(self) -> int:
        return len(self._cells)

    def in_range(self, addr: int) -> bool:
        return 0 <= addr < len(self._cells)

    # --- Core read/write ---

    def read(self, addr: int) -> int:
        """Read one cell. Raises AddressOutOfRange outside [0, capacity)."""
        if not 0 <= addr < len(self._cells):
            raise AddressOutOfRange(addr, len(self._cells))
        return self._cells[addr]

    def write(self, addr: int, value: int):
        """Write one cell. Raises AddressOutOfRange outside [0, capacity)."""
        if not 0 <= addr < len(self._cells):
            raise AddressOutOfRange(addr, len(self._cells))
        self._cells[addr] = value

    # --- Bulk load ---

    def load_program(self, image: Sequence[int]):
        """Copy a program image into memory starting at address 0.

        The size check happens before any cell is written, so a rejected
        image leaves memory exactly as it was.
        """
        if len(image) > len(self._cells):
            raise ProgramTooLarge(len(image), len(self._cells))
        self._cells[:len(image)] = list(image)

    def clear(self):
        self._cells = [0] * len(self._cells)

    # --- Snapshots ---

    def snapshot(self, start: int = 0, end: Optional[int] = None) -> Tuple[int, ...]:
        """Capture cells [start, end) for later diffing. Default is all of memory."""
        if end is None:
            end = len(self._cells)
        return tuple(self._cells[start:end])

    @staticmethod
    def diff_snapshots(snap_a: Sequence[int], snap_b: Sequence[int],
                       base_addr: int = 0) -> Dict[int, Tuple[int, int]]:
        """Compare two snapshots, return {addr: (old, new)} for changed cells."""
        changes = {}
        for i in range(min(len(snap_a), len(snap_b))):
            if snap_a[i] != snap_b[i]:
                changes[base_addr + i] = (snap_a[i], snap_b[i])
        return changes

    # --- Dump ---

    def dump(self, start: int = 0, length: int = 64, width: int = 8) -> str:
        """Cell dump for debugging, `width` cells per row."""
        end = min(start + length, len(self._cells))
        lines = []
        for row in range(start, end, width):
            cells = ' '.join(f'{v:>6}' for v in self._cells[row:min(row + width, end)])
            lines.append(f'{row:04X}  {cells}')
        return '\n'.join(lines)
