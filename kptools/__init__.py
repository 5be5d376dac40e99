"""Kernel timers, a space-time stack profiler and readers for timing data files."""

__version__ = "0.1.0"