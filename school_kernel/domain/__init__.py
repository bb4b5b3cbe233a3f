"""Kernel domain helpers with no database access."""

from school_kernel.domain.clock import Clock, DeterministicClock, SystemClock

__all__ = ["Clock", "SystemClock", "DeterministicClock"]
