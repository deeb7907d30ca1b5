"""Shared argparse type validators for CLI parameter bounds checking.

These validators produce clear error messages when users pass invalid
values (e.g., ``--top-k 0``, ``--merge-cut-height 1.5``).  They are
intended to be used as the ``type=`` argument in ``add_argument()``.
"""

from __future__ import annotations

import argparse


def _positive_int(value: str) -> int:
    """argparse type for positive integers (> 0)."""
    ivalue = int(value)
    if ivalue <= 0:
        raise argparse.ArgumentTypeError(f"{value} is not a positive integer")
    return ivalue


def _unit_interval(value: str) -> float:
    """argparse type for values in the open interval (0, 1)."""
    fvalue = float(value)
    if not (0 < fvalue < 1):
        raise argparse.ArgumentTypeError(
            f"{value} is not in the open interval (0, 1)"
        )
    return fvalue


def _positive_float(value: str) -> float:
    """argparse type for positive floats (> 0)."""
    fvalue = float(value)
    if fvalue <= 0:
        raise argparse.ArgumentTypeError(f"{value} is not a positive float")
    return fvalue


def _z_threshold(value: str) -> float:
    """argparse type for a Z cutoff; accepts 'inf' and '-inf', rejects NaN."""
    fvalue = float(value)
    if fvalue != fvalue:
        raise argparse.ArgumentTypeError(f"{value} is not a number")
    return fvalue


def _power_list(value: str) -> list[int]:
    """argparse type for powers: '1-10', '1,2,4,6' or '1-10,12,14'."""
    powers: list[int] = []
    try:
        for part in value.split(','):
            part = part.strip()
            if '-' in part:
                start, end = (int(p) for p in part.split('-', 1))
                powers.extend(range(start, end + 1))
            elif part:
                powers.append(int(part))
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value} is not a list of powers (e.g. 1-10,12,14)")
    if not powers or any(p <= 0 for p in powers):
        raise argparse.ArgumentTypeError(f"{value} must list positive integer powers")
    return sorted(set(powers))
