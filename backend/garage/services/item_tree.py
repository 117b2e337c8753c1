from __future__ import annotations
"""In-memory repair item tree and progress aggregation.

Items are held in an arena keyed by id with a parent -> children index, so
derived values (progress, per-category counts, nested forest) are recomputed
from one canonical structure instead of being patched into nested copies.

Only leaves count toward progress: a top-level item with children contributes
its children, a childless item contributes itself. Nesting is at most one level
deep; a child whose parent is not part of the tree is treated as top-level.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

COMPLETED = 'completed'
UNCATEGORIZED = 'uncategorized'


@dataclass(frozen=True)
class Progress:
    completed: int
    total: int

    @property
    def percentage(self) -> int:
        if self.total == 0:
            return 0
        # Half-up rounding (12.5 -> 13) rather than round()'s banker's rounding
        return (200 * self.completed + self.total) // (2 * self.total)

    def as_dict(self) -> Dict[str, int]:
        return {'completed': self.completed, 'total': self.total, 'percentage': self.percentage}


class ItemTree:
    def __init__(self, records: Iterable[Mapping[str, Any]]):
        self._nodes: Dict[Any, Mapping[str, Any]] = {}
        self._order: List[Any] = []
        for rec in records:
            if rec['id'] in self._nodes:
                continue
            self._nodes[rec['id']] = rec
            self._order.append(rec['id'])
        self._children: Dict[Any, List[Any]] = {}
        self._roots: List[Any] = []
        for item_id in self._sorted(self._order):
            parent_id = self._nodes[item_id].get('parent_id')
            if parent_id is not None and parent_id in self._nodes:
                self._children.setdefault(parent_id, []).append(item_id)
            else:
                self._roots.append(item_id)

    def _sorted(self, ids: List[Any]) -> List[Any]:
        # Stable on insertion order for equal order_index values
        return sorted(ids, key=lambda i: self._nodes[i].get('order_index') or 0)

    def __len__(self):
        return len(self._nodes)

    def __contains__(self, item_id):
        return item_id in self._nodes

    def get(self, item_id) -> Optional[Mapping[str, Any]]:
        return self._nodes.get(item_id)

    def roots(self) -> List[Mapping[str, Any]]:
        return [self._nodes[i] for i in self._roots]

    def children_of(self, item_id) -> List[Mapping[str, Any]]:
        return [self._nodes[i] for i in self._children.get(item_id, [])]

    def has_children(self, item_id) -> bool:
        return bool(self._children.get(item_id))

    def is_leaf(self, item_id) -> bool:
        return item_id in self._nodes and not self.has_children(item_id)

    def leaves(self) -> List[Mapping[str, Any]]:
        """Items that count toward progress, in display order."""
        out: List[Mapping[str, Any]] = []
        for root_id in self._roots:
            kids = self._children.get(root_id)
            if kids:
                out.extend(self._nodes[k] for k in kids)
            else:
                out.append(self._nodes[root_id])
        return out

    def category_of(self, item_id) -> str:
        """Own repair_type, else the parent's (sub-items inherit), else uncategorized."""
        node = self._nodes[item_id]
        if node.get('repair_type'):
            return node['repair_type']
        parent = self._nodes.get(node.get('parent_id'))
        if parent is not None and parent.get('repair_type'):
            return parent['repair_type']
        return UNCATEGORIZED

    def progress(self) -> Progress:
        leaves = self.leaves()
        return Progress(sum(1 for n in leaves if n.get('status') == COMPLETED), len(leaves))

    def progress_of(self, item_id) -> Progress:
        """Progress of one top-level item: its children, or itself when childless."""
        kids = self.children_of(item_id)
        if not kids:
            node = self._nodes[item_id]
            return Progress(1 if node.get('status') == COMPLETED else 0, 1)
        return Progress(sum(1 for n in kids if n.get('status') == COMPLETED), len(kids))

    def progress_by_category(self) -> Dict[str, Progress]:
        counts: Dict[str, List[int]] = {}
        for leaf in self.leaves():
            bucket = counts.setdefault(self.category_of(leaf['id']), [0, 0])
            bucket[1] += 1
            if leaf.get('status') == COMPLETED:
                bucket[0] += 1
        return {cat: Progress(c, t) for cat, (c, t) in counts.items()}

    def to_forest(self) -> List[Dict[str, Any]]:
        """Nested copy: top-level items, each parent carrying a ``children`` list."""
        forest = []
        for root_id in self._roots:
            node = dict(self._nodes[root_id])
            kids = self._children.get(root_id)
            if kids:
                node['children'] = [dict(self._nodes[k]) for k in kids]
            forest.append(node)
        return forest

    @classmethod
    def from_forest(cls, forest: Iterable[Mapping[str, Any]]) -> 'ItemTree':
        """Rebuild from a nested payload (e.g. a fetched order detail)."""
        flat: List[Mapping[str, Any]] = []
        for node in forest:
            flat.append(node)
            for child in node.get('children') or []:
                rec = dict(child)
                rec.setdefault('parent_id', node['id'])
                flat.append(rec)
        return cls(flat)


def summarize(tree: ItemTree) -> Dict[str, Any]:
    """Progress block embedded in order list and detail responses."""
    return {
        **tree.progress().as_dict(),
        'by_category': {cat: p.as_dict() for cat, p in sorted(tree.progress_by_category().items())},
    }


__all__ = ['Progress', 'ItemTree', 'summarize', 'UNCATEGORIZED']
