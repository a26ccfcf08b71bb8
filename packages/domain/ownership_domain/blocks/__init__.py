"""Computation blocks for ownership analysis.

This package turns the engine's typed views into pandas DataFrames suitable
for Excel rendering or other consumption.

Architecture:
    Stores (records) → Views (typed projections) → Blocks (DataFrames)

Available blocks:
- CapTableBlock: CapTableView → holder, by-class and summary frames
- HierarchyBlock: StoreState → edge list and entity level frames

Usage:
    from ownership_domain.blocks import BlockExecutor, CapTableBlock

    executor = BlockExecutor([CapTableBlock()])
    context = executor.run(cap_table_view=repository.get_cap_table_view(opco_id))
    ownership_df = context.get("cap_table_ownership")
"""

from .base import Block, BlockContext, BlockExecutor, CircularDependencyError, topological_sort
from .cap_table import CapTableBlock
from .hierarchy import HierarchyBlock

__all__ = [
    "Block",
    "BlockContext",
    "BlockExecutor",
    "CircularDependencyError",
    "topological_sort",
    "CapTableBlock",
    "HierarchyBlock",
]
