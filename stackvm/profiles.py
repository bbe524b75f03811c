"""
Machine profiles and program image files.

A profile bundles the construction parameters of a VirtualMachine plus the
host-side step budget. Named profiles live in PROFILES; a JSON file can
override any field on top of the default profile.

Image files are the loader format: a flat list of integers placed at
address 0. `.json` files hold a JSON array, anything else holds integers
separated by whitespace and/or commas, in the number syntax the text
assembler accepts for operands ($FF / 0xFF hex, %1010 binary, decimal).
"""

from __future__ import annotations
import json
import re
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from .assembler import parse_number

__all__ = ['VMProfile', 'PROFILES', 'get_profile', 'load_profile',
           'read_image', 'write_image']


@dataclass(frozen=True)
class VMProfile:
    stack_capacity: int = 1024
    memory_capacity: int = 1024
    print_consumes: bool = False   # PRINT pops instead of peeking
    check_returns: bool = False    # verify RET pops a CALL-pushed address
    max_steps: Optional[int] = None
    description: str = "Default machine (1024-cell stack hint, 1024-cell memory)"

    def with_overrides(self, **changes) -> 'VMProfile':
        """Copy with the given fields replaced. None values are ignored."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


PROFILES: Dict[str, VMProfile] = {
    "default": VMProfile(),
    "small": VMProfile(
        stack_capacity=64,
        memory_capacity=256,
        description="Small machine (64-cell stack hint, 256-cell memory)",
    ),
    "large": VMProfile(
        stack_capacity=4096,
        memory_capacity=65536,
        description="Large machine (4096-cell stack hint, 64K-cell memory)",
    ),
    "debug": VMProfile(
        check_returns=True,
        max_steps=1_000_000,
        description="Default sizes with return-address checking and a 1M step budget",
    ),
}


def get_profile(name: str) -> VMProfile:
    try:
        return PROFILES[name]
    except KeyError:
        raise ValueError(
            f"Unknown profile '{name}' (choices: {', '.join(PROFILES)})"
        ) from None


def load_profile(path: Union[str, Path], base: Optional[VMProfile] = None) -> VMProfile:
    """Read a JSON object of profile fields and apply it on top of `base`."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a JSON object")
    known = {f.name for f in fields(VMProfile)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"{path}: unknown profile key(s): {', '.join(unknown)}")
    return replace(base or PROFILES["default"], **data)


# ──────────────────────────────────────────────
# Image files
# ──────────────────────────────────────────────

_SEPARATORS = re.compile(r'[\s,]+')


def read_image(path: Union[str, Path]) -> List[int]:
    """Load a program image from a .json array or a whitespace/comma list."""
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == '.json':
        data = json.loads(text)
        if not isinstance(data, list) or not all(
                isinstance(v, int) and not isinstance(v, bool) for v in data):
            raise ValueError(f"{path}: expected a JSON array of integers")
        return data
    return [parse_number(tok) for tok in _SEPARATORS.split(text.strip()) if tok]


def write_image(path: Union[str, Path], image: Sequence[int]):
    path = Path(path)
    if path.suffix.lower() == '.json':
        path.write_text(json.dumps(list(image)) + "\n", encoding="utf-8")
    else:
        path.write_text(' '.join(str(v) for v in image) + "\n", encoding="utf-8")
