"""
roleclone/lineage.py

角色血缘追踪 - 反复克隆形成的祖先/后代树

每次获取都重建树；节点只按角色ID识别，不依赖对象身份。
获取到的树放在按根角色ID索引的读穿缓存中，有克隆落到该树时失效。
"""
from typing import Dict, Iterable, Iterator, List, Optional, Union
from dataclasses import dataclass, replace
from datetime import datetime
import logging

from roleclone.ports import RoleCloneGateway
from roleclone.types import CloneHistoryEntry, CloneType, LineageSnapshot, RoleLineage

logger = logging.getLogger(__name__)


# ============== 树工具 ==============

def iter_lineage(node: RoleLineage, max_depth: Optional[int] = None) -> Iterator[RoleLineage]:
    """
    前序遍历血缘树

    Args:
        node: 起始节点（最先返回）
        max_depth: 可选的展示深度；None 表示遍历整棵树
    """
    stack = [(node, 0)]
    while stack:
        current, depth = stack.pop()
        yield current
        if max_depth is not None and depth >= max_depth:
            continue
        for child in reversed(current.child_roles):
            stack.append((child, depth + 1))


def prune_lineage(node: RoleLineage, max_depth: int) -> RoleLineage:
    """返回裁剪到 max_depth 的树副本，clone_count 保持不变"""
    children = []
    if max_depth > 0:
        children = [prune_lineage(c, max_depth - 1) for c in node.child_roles]
    return replace(node, child_roles=children, lineage_path=list(node.lineage_path))


def count_total_roles(node: RoleLineage) -> int:
    """树中角色总数（含根）"""
    return sum(1 for _ in iter_lineage(node))


def max_depth(node: RoleLineage) -> int:
    """最深叶子到 node 的层数，只有根时为 0"""
    if not node.child_roles:
        return 0
    return 1 + max(max_depth(child) for child in node.child_roles)


def find_node(tree: RoleLineage, role_id: str) -> Optional[RoleLineage]:
    for node in iter_lineage(tree):
        if node.id == role_id:
            return node
    return None


def snapshot_for(tree: RoleLineage, role_id: str) -> Optional[LineageSnapshot]:
    """构建树中某个节点的 祖先/后代/兄弟 视图"""
    node = find_node(tree, role_id)
    if node is None:
        return None

    ancestors = [a for a in (find_node(tree, aid) for aid in node.lineage_path) if a is not None]
    descendants = list(iter_lineage(node))[1:]
    siblings: List[RoleLineage] = []
    if ancestors:
        siblings = [c for c in ancestors[-1].child_roles if c.id != node.id]

    return LineageSnapshot(
        lineage=node,
        ancestors=ancestors,
        descendants=descendants,
        siblings=siblings,
        tree=tree,
    )


@dataclass
class LineageRecord:
    """
    持久化层保存的扁平父子记录

    Attributes:
        id: 角色ID
        name: 角色名称
        parent_role_id: 克隆来源角色（原始角色为 None）
        clone_type: 从父角色克隆时的类型
        cloned_at: 克隆时间
    """

    id: str
    name: str
    parent_role_id: Optional[str] = None
    clone_type: Optional[Union[str, CloneType]] = None
    cloned_at: Optional[datetime] = None


def build_lineage_forest(records: Iterable[LineageRecord]) -> List[RoleLineage]:
    """
    由扁平记录构建血缘树

    父角色未知的记录作为根，子节点保持输入顺序。
    处于父子环中的记录从任何根都不可达，记录警告后丢弃。

    Returns:
        根节点列表，已填好 generation_level、lineage_path 和 clone_count
    """
    records = list(records)
    by_id = {r.id: r for r in records}
    children: Dict[str, List[LineageRecord]] = {}
    roots: List[LineageRecord] = []

    for record in records:
        if record.parent_role_id and record.parent_role_id in by_id:
            children.setdefault(record.parent_role_id, []).append(record)
        else:
            roots.append(record)

    visited = set()

    def build(record: LineageRecord, path: List[str]) -> RoleLineage:
        visited.add(record.id)
        node = RoleLineage(
            id=record.id,
            name=record.name,
            generation_level=len(path),
            clone_type=record.clone_type,
            cloned_at=record.cloned_at,
            lineage_path=list(path),
            parent_role_id=path[-1] if path else None,
        )
        for child in children.get(record.id, []):
            if child.id not in visited:
                node.child_roles.append(build(child, path + [record.id]))
        node.clone_count = len(node.child_roles)
        return node

    forest = [build(root, []) for root in roots]

    orphaned = [r.id for r in records if r.id not in visited]
    if orphaned:
        logger.warning(f"Lineage records in a parent cycle were skipped: {orphaned}")
    return forest


# ============== 缓存 ==============

class LineageCache:
    """
    按根角色ID索引的血缘树读穿缓存

    Example:
        >>> cache = LineageCache()
        >>> cache.put(tree)
        >>> cache.tree_for(some_descendant_id) is tree
        True
        >>> cache.invalidate_for_role(some_descendant_id)
    """

    def __init__(self):
        self._trees: Dict[str, RoleLineage] = {}
        self._root_of: Dict[str, str] = {}

    def put(self, tree: RoleLineage) -> None:
        self.invalidate(tree.id)
        self._trees[tree.id] = tree
        for node in iter_lineage(tree):
            self._root_of[node.id] = tree.id

    def tree_for(self, role_id: str) -> Optional[RoleLineage]:
        root_id = self._root_of.get(role_id)
        return self._trees.get(root_id) if root_id else None

    def trees(self) -> List[RoleLineage]:
        return list(self._trees.values())

    def invalidate(self, root_id: str) -> None:
        tree = self._trees.pop(root_id, None)
        if tree is None:
            return
        for node in iter_lineage(tree):
            self._root_of.pop(node.id, None)
        logger.debug(f"Lineage cache invalidated for root {root_id}")

    def invalidate_for_role(self, role_id: str) -> None:
        root_id = self._root_of.get(role_id)
        if root_id:
            self.invalidate(root_id)

    def clear(self) -> None:
        self._trees.clear()
        self._root_of.clear()

    def __contains__(self, role_id: str) -> bool:
        return role_id in self._root_of


# ============== 追踪器 ==============

class LineageTracker:
    """
    基于缓存树的血缘查询

    只有 load_lineage() 会访问网关；其余查询只使用已缓存的树，未知ID视为不存在。
    """

    def __init__(self, gateway: RoleCloneGateway, cache: Optional[LineageCache] = None):
        self._gateway = gateway
        self._cache = cache if cache is not None else LineageCache()
        self._current_role_id: Optional[str] = None
        self._lineage: Optional[LineageSnapshot] = None

    @property
    def cache(self) -> LineageCache:
        return self._cache

    @property
    def lineage(self) -> Optional[LineageSnapshot]:
        """最近一次加载的角色的血缘快照"""
        return self._lineage

    async def load_lineage(self, role_id: str) -> LineageSnapshot:
        """
        加载角色血缘，缓存未命中时才请求网关

        Raises:
            网关抛出的 RoleNotFoundError / CloneServiceError
        """
        tree = self._cache.tree_for(role_id)
        snapshot = snapshot_for(tree, role_id) if tree is not None else None

        if snapshot is None:
            fetched = await self._gateway.get_role_lineage(role_id)
            tree = fetched.tree or fetched.lineage
            self._cache.put(tree)
            snapshot = snapshot_for(tree, role_id) or fetched
            logger.info(f"Lineage loaded for role {role_id} (root {tree.id})")

        self._current_role_id = role_id
        self._lineage = snapshot
        return snapshot

    async def refresh_lineage(self, role_id: Optional[str] = None) -> Optional[LineageSnapshot]:
        role_id = role_id or self._current_role_id
        if role_id is None:
            return None
        self._cache.invalidate_for_role(role_id)
        return await self.load_lineage(role_id)

    def invalidate_for_role(self, role_id: str) -> None:
        tree = self._cache.tree_for(role_id)
        if tree is not None and self._current_role_id and find_node(tree, self._current_role_id):
            self._lineage = None
        self._cache.invalidate_for_role(role_id)

    # ----- 查询 -----

    def find(self, role_id: str) -> Optional[RoleLineage]:
        for tree in self._cache.trees():
            node = find_node(tree, role_id)
            if node is not None:
                return node
        return None

    def _snapshot(self, role_id: str) -> Optional[LineageSnapshot]:
        tree = self._cache.tree_for(role_id)
        return snapshot_for(tree, role_id) if tree is not None else None

    def ancestors(self, role_id: str) -> List[RoleLineage]:
        snapshot = self._snapshot(role_id)
        return snapshot.ancestors if snapshot else []

    def descendants(self, role_id: str) -> List[RoleLineage]:
        snapshot = self._snapshot(role_id)
        return snapshot.descendants if snapshot else []

    def siblings(self, role_id: str) -> List[RoleLineage]:
        snapshot = self._snapshot(role_id)
        return snapshot.siblings if snapshot else []

    def subtree(self, role_id: str) -> Optional[RoleLineage]:
        return self.find(role_id)

    def get_role_generation(self, role_id: str) -> int:
        node = self.find(role_id)
        return node.generation_level if node else 0

    def get_clone_history(self, role_id: str) -> List[CloneHistoryEntry]:
        node = self.find(role_id)
        if node is None:
            return []
        return [
            CloneHistoryEntry(cloned_role=child, cloned_at=child.cloned_at, clone_type=child.clone_type)
            for child in node.child_roles
        ]

    def is_ancestor(self, potential_ancestor: str, descendant: str) -> bool:
        node = self.find(descendant)
        return node is not None and potential_ancestor in node.lineage_path

    def is_descendant(self, potential_descendant: str, ancestor: str) -> bool:
        return self.is_ancestor(ancestor, potential_descendant)


__all__ = [
    "iter_lineage",
    "prune_lineage",
    "count_total_roles",
    "max_depth",
    "find_node",
    "snapshot_for",
    "LineageRecord",
    "build_lineage_forest",
    "LineageCache",
    "LineageTracker",
]
