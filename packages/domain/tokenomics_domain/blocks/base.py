"""Block framework for report computations.

A Block reads named inputs from a BlockContext and writes named DataFrame
outputs back. BlockExecutor orders blocks so every producer runs before its
consumers (Kahn's algorithm) and checks inputs/outputs around each block.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


# =============================================================================
# Block Context
# =============================================================================

@dataclass
class BlockContext:
    """Named values shared between blocks.

    Example:
        context = BlockContext()
        context.set("token_supply", supply)
        SupplyBlock().execute(context)
        context.get("supply_summary")      # DataFrame
    """

    _data: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str) -> Any:
        """Return the value stored under key.

        Raises:
            KeyError: If nothing was stored under key
        """
        try:
            return self._data[key]
        except KeyError:
            raise KeyError(
                f"Key '{key}' not found in context. Available keys: {sorted(self._data)}"
            ) from None

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def has(self, key: str) -> bool:
        return key in self._data

    def keys(self) -> List[str]:
        return list(self._data)


# =============================================================================
# Block Base Class
# =============================================================================

class Block(ABC):
    """A unit of report computation with declared inputs and outputs.

    Subclass example:
        class LockupBlock(Block):
            def inputs(self):
                return ["lockups"]

            def outputs(self):
                return ["lockup_table"]

            def execute(self, context):
                rows = [l.model_dump() for l in context.get("lockups")]
                context.set("lockup_table", pd.DataFrame(rows))
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
    """Blocks depend on each other in a cycle."""


def topological_sort(blocks: List[Block]) -> List[Block]:
    """Order blocks so producers precede consumers.

    Inputs no block produces are expected in the initial context. Among
    blocks that are ready at the same time, the given order is kept.

    Raises:
        ValueError: Two blocks declare the same output
        CircularDependencyError: The dependency graph has a cycle
    """
    producers: Dict[str, Block] = {}
    for block in blocks:
        for key in block.outputs():
            if key in producers:
                raise ValueError(
                    f"Multiple blocks produce '{key}': {producers[key]} and {block}"
                )
            producers[key] = block

    pending = {id(block): 0 for block in blocks}
    consumers: Dict[int, List[Block]] = {id(block): [] for block in blocks}
    for block in blocks:
        for key in block.inputs():
            producer = producers.get(key)
            if producer is not None:
                consumers[id(producer)].append(block)
                pending[id(block)] += 1

    ready = [block for block in blocks if pending[id(block)] == 0]
    ordered: List[Block] = []
    while ready:
        block = ready.pop(0)
        ordered.append(block)
        for consumer in consumers[id(block)]:
            pending[id(consumer)] -= 1
            if pending[id(consumer)] == 0:
                ready.append(consumer)

    if len(ordered) != len(blocks):
        stuck = [block for block in blocks if pending[id(block)] > 0]
        raise CircularDependencyError(f"Circular dependency detected among blocks: {stuck}")
    return ordered


# =============================================================================
# Block Executor
# =============================================================================

class BlockExecutor:
    """Runs blocks in dependency order.

    Example:
        executor = BlockExecutor([DistributionBlock(), SupplyBlock()])
        context = BlockContext()
        context.set("token_supply", supply)
        context.set("distribution_run", run)
        executor.execute(context)
        context.get("distribution_records")
    """

    def __init__(self, blocks: List[Block]):
        self.blocks = blocks
        self._order: Optional[List[Block]] = None

    @property
    def order(self) -> List[Block]:
        if self._order is None:
            self._order = topological_sort(self.blocks)
        return self._order

    def execute(self, context: BlockContext) -> BlockContext:
        """Run every block against context and return it.

        Raises:
            CircularDependencyError: The blocks form a cycle
            KeyError: A block's input is missing from context
            ValueError: A block did not write a declared output
        """
        for block in self.order:
            missing = [key for key in block.inputs() if not context.has(key)]
            if missing:
                raise KeyError(
                    f"Block {block} requires {missing} but they are not in context. "
                    f"Available keys: {context.keys()}"
                )

            block.execute(context)

            unwritten = [key for key in block.outputs() if not context.has(key)]
            if unwritten:
                raise ValueError(f"Block {block} declared outputs {unwritten} but did not write them")
        return context
