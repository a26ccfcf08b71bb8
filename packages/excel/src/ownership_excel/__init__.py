"""Excel export for the ownership engine."""

from .cap_table_renderer import CapTableWorkbookRenderer

__all__ = ["CapTableWorkbookRenderer"]
