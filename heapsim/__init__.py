"""Simulated segregated free-list allocator with boundary tags, printers and a scenario harness."""

__version__ = "0.1.0"
__all__ = ["heap", "printing", "harness"]