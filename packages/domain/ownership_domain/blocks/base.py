"""Base classes for DataFrame computation blocks.

Blocks turn the engine's typed views into pandas DataFrames for export and
analysis:
- Block: declares context keys it reads and writes
- BlockContext: the shared key -> value bag blocks communicate through
- topological_sort: orders blocks so producers run before consumers
- BlockExecutor: runs a set of blocks against a context
"""

import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)


# =============================================================================
# Block Context
# =============================================================================

@dataclass
class BlockContext:
    """Key -> value bag shared by the blocks of one execution.

    Example:
        context = BlockContext.with_values(cap_table_view=view)
        CapTableBlock().execute(context)
        holders_df = context.get("cap_table_ownership")
    """

    _data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def with_values(cls, **values: Any) -> "BlockContext":
        """Create a context pre-seeded with input values."""
        return cls(dict(values))

    def get(self, key: str) -> Any:
        """Get a value.

        Raises:
            KeyError: If nothing was stored under ``key``
        """
        if key not in self._data:
            raise KeyError(f"Key '{key}' not found in context. Available keys: {self.keys()}")
        return self._data[key]

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def has(self, key: str) -> bool:
        return key in self._data

    def keys(self) -> List[str]:
        return list(self._data)

    def subset(self, keys: List[str]) -> Dict[str, Any]:
        """Values for the given keys (e.g., a block's outputs)."""
        return {key: self.get(key) for key in keys}


# =============================================================================
# Block Base Class
# =============================================================================

class Block(ABC):
    """A unit of computation with declared inputs and outputs.

    Subclasses read every key listed by ``inputs()`` from the context and
    must write every key listed by ``outputs()``. Declaring keys up front lets
    the executor order blocks and catch wiring mistakes early.

    Subclass example:
        class HolderCountBlock(Block):
            def inputs(self) -> List[str]:
                return ["cap_table_ownership"]

            def outputs(self) -> List[str]:
                return ["holder_count"]

            def execute(self, context: BlockContext) -> None:
                df = context.get("cap_table_ownership")
                context.set("holder_count", df["owner_entity_id"].nunique())
    """

    @abstractmethod
    def inputs(self) -> List[str]:
        """Context keys this block reads."""

    @abstractmethod
    def outputs(self) -> List[str]:
        """Context keys this block writes."""

    @abstractmethod
    def execute(self, context: BlockContext) -> None:
        """Read inputs from context, compute, write outputs to context."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(inputs={self.inputs()}, outputs={self.outputs()})"


# =============================================================================
# Dependency Resolution
# =============================================================================

class CircularDependencyError(Exception):
    """Blocks depend on each other's outputs in a loop."""


def topological_sort(blocks: List[Block]) -> List[Block]:
    """Order blocks so every block runs after the producers of its inputs.

    Kahn's algorithm. Inputs that no block produces are expected to be in the
    initial context. Blocks that do not depend on each other keep their
    given order.

    Args:
        blocks: Blocks in any order

    Returns:
        Blocks in execution order

    Raises:
        ValueError: If two blocks declare the same output
        CircularDependencyError: If the dependency graph has a cycle
    """
    producers: Dict[str, Block] = {}
    for block in blocks:
        for key in block.outputs():
            if key in producers:
                raise ValueError(f"Multiple blocks produce '{key}': {producers[key]} and {block}")
            producers[key] = block

    pending_inputs: Dict[int, int] = {id(block): 0 for block in blocks}
    consumers: Dict[int, List[Block]] = {id(block): [] for block in blocks}

    for block in blocks:
        for key in block.inputs():
            producer = producers.get(key)
            if producer is not None:
                consumers[id(producer)].append(block)
                pending_inputs[id(block)] += 1

    ready: Deque[Block] = deque(b for b in blocks if pending_inputs[id(b)] == 0)
    ordered: List[Block] = []

    while ready:
        block = ready.popleft()
        ordered.append(block)
        for consumer in consumers[id(block)]:
            pending_inputs[id(consumer)] -= 1
            if pending_inputs[id(consumer)] == 0:
                ready.append(consumer)

    if len(ordered) != len(blocks):
        stuck = [b for b in blocks if pending_inputs[id(b)] > 0]
        raise CircularDependencyError(f"Circular dependency detected among blocks: {stuck}")

    return ordered


# =============================================================================
# Block Executor
# =============================================================================

class BlockExecutor:
    """Runs blocks in dependency order and checks their declared keys.

    Example:
        executor = BlockExecutor([CapTableBlock(), HierarchyBlock()])
        context = executor.run(cap_table_view=view, store_state=state)
        context.get("entity_levels")
    """

    def __init__(self, blocks: List[Block]):
        self.blocks = blocks
        self._order: Optional[List[Block]] = None

    def execute(self, context: BlockContext) -> BlockContext:
        """Execute every block against ``context`` and return it.

        Raises:
            CircularDependencyError: If the blocks cannot be ordered
            KeyError: If a block's input is missing when it is about to run
            ValueError: If a block did not write one of its declared outputs
        """
        if self._order is None:
            self._order = topological_sort(self.blocks)

        for block in self._order:
            missing = [key for key in block.inputs() if not context.has(key)]
            if missing:
                raise KeyError(
                    f"Block {block} requires inputs {missing} that are not in context. "
                    f"Available keys: {context.keys()}"
                )

            block.execute(context)
            logger.debug("Executed %r", block)

            unwritten = [key for key in block.outputs() if not context.has(key)]
            if unwritten:
                raise ValueError(f"Block {block} declared outputs {unwritten} but did not write them")

        return context

    def run(self, **inputs: Any) -> BlockContext:
        """Execute against a fresh context seeded with ``inputs``."""
        return self.execute(BlockContext.with_values(**inputs))

    def outputs(self, context: BlockContext) -> Mapping[str, Any]:
        """All declared outputs of this executor's blocks, read from ``context``."""
        keys = [key for block in self.blocks for key in block.outputs()]
        return context.subset(keys)
