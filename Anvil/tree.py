"""Anvil operation tree.

A recipe is a strict binary tree. Leaves are raw inputs (the base item or
one enchanted book); combine nodes are anvil operations that own their
target (``left``) and sacrifice (``right``) children.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union


@dataclass(frozen=True)
class LeafNode:
    """A raw input: the base item, or a book carrying one enchantment."""
    id: str
    item: str
    enchantments: Tuple[str, ...] = ()
    enchantment: Optional[Tuple[str, int]] = None  # (id, level) for books

    @property
    def label(self) -> str:
        return self.item

    @property
    def is_book(self) -> bool:
        return self.enchantment is not None


@dataclass(frozen=True)
class CombineNode:
    """One anvil operation: ``left`` is kept, ``right`` is consumed."""
    id: str
    left: "TreeNode"
    right: "TreeNode"
    level_cost: int
    xp_cost: int
    resulting_pwp: int
    result_label: str
    enchantments: Tuple[str, ...] = ()

    @property
    def label(self) -> str:
        return self.result_label


TreeNode = Union[LeafNode, CombineNode]


@dataclass
class NodeIdSequence:
    """Hands out ``node_1``, ``node_2``, ... for one optimization attempt."""
    prefix: str = "node"
    _next: int = field(default=1, repr=False)

    def next_id(self) -> str:
        node_id = f"{self.prefix}_{self._next}"
        self._next += 1
        return node_id


# ---------------------------------------------------------------------------
# Traversal
# ---------------------------------------------------------------------------

def iter_leaves(node: TreeNode) -> Iterator[LeafNode]:
    """Depth-first, left-to-right leaves."""
    stack: List[TreeNode] = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, LeafNode):
            yield current
        else:
            stack.append(current.right)
            stack.append(current.left)


def iter_steps(node: TreeNode) -> Iterator[CombineNode]:
    """
    Combine nodes in execution order (post-order).

    Every step appears after the steps that produce its inputs, so this is
    the order in which the operations are performed at the anvil.
    """
    if isinstance(node, LeafNode):
        return
    yield from iter_steps(node.left)
    yield from iter_steps(node.right)
    yield node


def count_combine_nodes(node: TreeNode) -> int:
    return sum(1 for _ in iter_steps(node))


def tree_to_dict(node: TreeNode) -> Dict[str, Any]:
    """Plain, JSON/YAML-serializable form of a tree."""
    if isinstance(node, LeafNode):
        data: Dict[str, Any] = {
            "id": node.id,
            "kind": "leaf",
            "item": node.item,
            "enchantments": list(node.enchantments),
        }
        if node.enchantment is not None:
            data["enchantment"] = {"id": node.enchantment[0], "level": node.enchantment[1]}
        return data

    return {
        "id": node.id,
        "kind": "combine",
        "left": tree_to_dict(node.left),
        "right": tree_to_dict(node.right),
        "levelCost": node.level_cost,
        "xpCost": node.xp_cost,
        "resultingPwp": node.resulting_pwp,
        "resultLabel": node.result_label,
        "enchantments": list(node.enchantments),
    }
