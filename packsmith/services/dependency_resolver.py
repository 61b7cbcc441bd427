"""
依赖处理服务

从直接配置的模组出发，逐层（广度优先）解析必需与可选依赖的传递闭包，
处理按条目忽略的依赖、不兼容声明，并合并每个模组在客户端/服务端的需求。
"""

import asyncio
from dataclasses import dataclass, field
from typing import (
    Awaitable,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Type,
    Union,
    cast,
)

from loguru import logger

from packsmith.models import (
    DependencyKind,
    DependencyRef,
    ModLoader,
    ModReference,
    Platform,
    ProjectKey,
    ResolvedDependency,
    ResolvedPack,
    SideRequirement,
    Sides,
    VersionRecord,
)
from packsmith.exceptions import (
    ConfigurationError,
    DependencyUnresolvable,
    DistributionDeniedError,
    GameVersionMismatchError,
    IncompatibleModsError,
    NotFoundError,
)
from packsmith.services.api_client import PlatformClient

_OPTIONAL_CAP = Sides(SideRequirement.OPTIONAL, SideRequirement.OPTIONAL)

_Result = Union[VersionRecord, Exception]


@dataclass
class _Node:
    key: str
    record: VersionRecord
    ref: Optional[ModReference] = None

    @property
    def direct(self) -> bool:
        return self.ref is not None


@dataclass
class _Pending:
    key: str
    dep: DependencyRef
    requesters: List[Tuple[str, DependencyKind]] = field(default_factory=list)
    record: Optional[VersionRecord] = None


@dataclass(frozen=True)
class _Edge:
    requester: str
    target: str
    kind: DependencyKind


class DependencyResolver:
    """依赖解析器"""

    def __init__(
        self,
        clients: Mapping[Platform, PlatformClient],
        game_version: str,
        mod_loader: ModLoader,
    ):
        self.clients = clients
        self.game_version = game_version
        self.mod_loader = mod_loader
        self._claimed: Dict[ProjectKey, str] = {}
        self._dropped: Dict[str, NotFoundError] = {}
        self._versions: Dict[str, _Result] = {}

    def claim(self, project_key: ProjectKey, node_key: str) -> bool:
        """
        检查并标记一个项目为已访问

        在事件循环中同步执行，中间没有 await，因此相对其他解析任务是原子的。

        Returns:
            True 如果本次调用获得了该项目
        """
        if project_key in self._claimed:
            return False
        self._claimed[project_key] = node_key
        return True

    async def resolve(self, mods: Sequence[ModReference]) -> ResolvedPack:
        """
        解析依赖

        Args:
            mods: 直接配置的模组

        Returns:
            完整的依赖闭包

        Raises:
            NotFoundError: 直接配置的模组不存在
            DependencyUnresolvable: 必需依赖无法获取
            IncompatibleModsError: 最终集合中存在不兼容的模组
        """
        self._claimed.clear()
        self._dropped.clear()
        self._versions.clear()
        nodes: Dict[str, _Node] = {}
        edges: List[_Edge] = []
        incompatibilities: List[Tuple[str, DependencyRef]] = []

        refs = sorted(mods, key=lambda m: m.key)
        for ref in refs:
            self._claim_direct(ref.mod_id.project_key, ref.key)

        logger.info(f"[解析] 开始解析 {len(refs)} 个模组...")
        results = await self._gather({ref.key: self._fetch_direct(ref) for ref in refs})
        self._raise_first(results)
        for ref in refs:
            record = cast(VersionRecord, results[ref.key])
            # 配置里可能写的是 slug，以平台返回的规范 ID 为准
            canonical = record.mod_id.project_key
            if canonical != ref.mod_id.project_key:
                self._claim_direct(canonical, ref.key)
            self._check_direct(ref, record)
            nodes[ref.key] = _Node(ref.key, record, ref)

        frontier = [ref.key for ref in refs]
        while frontier:
            pending: Dict[str, _Pending] = {}
            links: List[Tuple[str, DependencyRef]] = []

            for key in frontier:
                node = nodes[key]
                for dep in node.record.dependencies:
                    if node.ref is not None and node.ref.ignores(dep):
                        logger.debug(f"[解析] {key} 忽略依赖 {dep}")
                        continue
                    if dep.kind is DependencyKind.OTHER:
                        continue
                    if dep.kind is DependencyKind.INCOMPATIBLE:
                        incompatibilities.append((key, dep))
                        continue
                    links.append((key, dep))

            # 先查出只给了版本 ID 的依赖所属的项目，再按请求者顺序链接，
            # 保证同一项目由键序最小的请求者决定版本
            versions = await self._lookup_versions(
                [dep for _, dep in links if dep.project_id is None], nodes
            )
            for requester, dep in links:
                if dep.project_id is not None:
                    self._link(
                        requester, (dep.platform, dep.project_id), dep, nodes, pending, edges
                    )
                    continue
                found = versions[str(dep)]
                if isinstance(found, NotFoundError):
                    self._missing(requester, dep, found)
                    continue
                record = cast(VersionRecord, found)
                self._link(
                    requester,
                    record.mod_id.project_key,
                    dep,
                    nodes,
                    pending,
                    edges,
                    record=record,
                )

            fetched = await self._gather(
                {key: self._fetch_pending(p) for key, p in pending.items() if p.record is None}
            )
            self._raise_first(fetched, tolerate=NotFoundError)

            frontier = []
            for key in sorted(pending):
                p = pending[key]
                result = p.record or fetched[key]
                if isinstance(result, NotFoundError):
                    self._drop_missing(p, result, edges)
                    continue
                record = cast(VersionRecord, result)
                self._check_transitive(key, record)
                nodes[key] = _Node(key, record)
                frontier.append(key)

            if frontier:
                logger.info(f"[解析] 发现 {len(frontier)} 个依赖需要处理")

        self._check_incompatibilities(nodes, incompatibilities)
        sides = self._compute_sides(nodes, edges)

        required_by: Dict[str, set] = {key: set() for key in nodes}
        for edge in edges:
            required_by[edge.target].add(edge.requester)

        pack = ResolvedPack(
            {
                key: ResolvedDependency(
                    key=key,
                    mod_id=node.record.mod_id,
                    record=node.record,
                    sides=sides[key],
                    direct=node.direct,
                    required_by=tuple(sorted(required_by[key])),
                )
                for key, node in nodes.items()
            }
        )
        logger.success(
            f"[解析] 完成: {len(pack.direct())} 个直接模组, {len(pack.transitive())} 个依赖"
        )
        return pack

    def _claim_direct(self, project_key: ProjectKey, key: str):
        if not self.claim(project_key, key) and self._claimed[project_key] != key:
            other = self._claimed[project_key]
            raise ConfigurationError(
                f"模组 {key} 与 {other} 配置了同一个项目",
                context={"mod": key, "other": other},
            )

    def _link(
        self,
        requester: str,
        project_key: ProjectKey,
        dep: DependencyRef,
        nodes: Dict[str, _Node],
        pending: Dict[str, _Pending],
        edges: List[_Edge],
        record: Optional[VersionRecord] = None,
    ):
        target = self._claimed.get(project_key)
        if target is None:
            target = self._transitive_key(project_key, nodes, pending)
            self.claim(project_key, target)
            pending[target] = _Pending(target, dep, record=record)
        elif target in self._dropped:
            # 之前作为可选依赖查询过且不存在
            self._missing(requester, dep, self._dropped[target])
            return
        if target == requester:
            return
        if target in pending:
            pending[target].requesters.append((requester, dep.kind))
        edges.append(_Edge(requester, target, dep.kind))

    async def _lookup_versions(
        self, deps: List[DependencyRef], nodes: Dict[str, _Node]
    ) -> Dict[str, _Result]:
        """
        按版本 ID 查询依赖所属的版本记录

        同一版本在整个解析过程中只查询一次；已在闭包中的版本直接复用。

        Returns:
            依赖描述 (如 "modrinth:version/xxx") -> 版本记录或 NotFoundError
        """
        known = {
            f"{node.record.platform.value}:version/{node.record.mod_id.version_id}": node.record
            for node in nodes.values()
        }
        wanted: Dict[str, DependencyRef] = {}
        for dep in deps:
            label = str(dep)
            if label in known and label not in self._versions:
                self._versions[label] = known[label]
            if label not in self._versions:
                wanted.setdefault(label, dep)

        lookups = await self._gather(
            {
                label: self.clients[dep.platform].fetch_version_only(dep.version_id)
                for label, dep in wanted.items()
            }
        )
        self._raise_first(lookups, tolerate=NotFoundError)
        self._versions.update(lookups)
        return {str(dep): self._versions[str(dep)] for dep in deps}

    @staticmethod
    def _transitive_key(
        project_key: ProjectKey,
        nodes: Dict[str, _Node],
        pending: Dict[str, _Pending],
    ) -> str:
        platform, project_id = project_key
        key = f"{platform.value}:{project_id}"
        candidate, n = key, 1
        while candidate in nodes or candidate in pending:
            n += 1
            candidate = f"{key}#{n}"
        return candidate

    async def _fetch_direct(self, ref: ModReference) -> VersionRecord:
        client = self.clients[ref.platform]
        try:
            return await client.fetch_mod_version(ref.mod_id)
        except NotFoundError as e:
            raise NotFoundError(
                f"模组 {ref.key} 在 {ref.platform.value} 上不存在: {ref.mod_id}",
                context={**e.context, "mod": ref.key},
            ) from e

    async def _fetch_pending(self, p: _Pending) -> VersionRecord:
        return await self.clients[p.dep.platform].fetch_dependency(
            p.dep, self.game_version, self.mod_loader
        )

    @staticmethod
    async def _gather(coros: Dict[str, Awaitable[VersionRecord]]) -> Dict[str, _Result]:
        """并发执行一层请求，按键收集结果或异常"""
        if not coros:
            return {}
        results = await asyncio.gather(*coros.values(), return_exceptions=True)
        for result in results:
            # 取消等不属于 Exception 的异常直接向上传播
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result
        return dict(zip(coros.keys(), results))

    @staticmethod
    def _raise_first(
        results: Dict[str, _Result],
        tolerate: Optional[Type[Exception]] = None,
    ):
        """按键排序抛出第一个不可容忍的错误，多个失败时结果确定"""
        failures = [
            (key, result)
            for key, result in sorted(results.items())
            if isinstance(result, Exception)
            and not (tolerate is not None and isinstance(result, tolerate))
        ]
        for key, error in failures:
            logger.error(f"[解析] {key}: {error}")
        if failures:
            raise failures[0][1]

    @staticmethod
    def _missing(requester: str, dep: DependencyRef, error: NotFoundError):
        if dep.kind is DependencyKind.REQUIRED:
            raise DependencyUnresolvable(
                f"{requester} 的必需依赖 {dep} 无法获取: {error.message}",
                requester=requester,
                dependency=str(dep),
            ) from error
        logger.warning(f"[解析] {requester} 的可选依赖 {dep} 不存在，已跳过")

    def _drop_missing(self, p: _Pending, error: NotFoundError, edges: List[_Edge]):
        for requester, kind in sorted(p.requesters, key=lambda r: r[0]):
            if kind is DependencyKind.REQUIRED:
                raise DependencyUnresolvable(
                    f"{requester} 的必需依赖 {p.dep} 无法获取: {error.message}",
                    requester=requester,
                    dependency=str(p.dep),
                ) from error
        requesters = ", ".join(sorted({r for r, _ in p.requesters}))
        logger.warning(f"[解析] 可选依赖 {p.dep} 不存在，已跳过 (来自 {requesters})")
        self._dropped[p.key] = error
        edges[:] = [e for e in edges if e.target != p.key]

    def _check_direct(self, ref: ModReference, record: VersionRecord):
        if record.game_versions and self.game_version not in record.game_versions:
            raise GameVersionMismatchError(
                f"模组 {ref.key} 需要 Minecraft {self.game_version}，"
                f"但该版本只支持 {', '.join(record.game_versions)}",
                context={"mod": ref.key, "game_versions": list(record.game_versions)},
            )
        self._check_distribution(ref.key, record)

    def _check_transitive(self, key: str, record: VersionRecord):
        if record.game_versions and self.game_version not in record.game_versions:
            logger.warning(
                f"[解析] 依赖 {record.name} ({key}) 未声明支持 Minecraft {self.game_version}"
            )
        self._check_distribution(key, record)

    @staticmethod
    def _check_distribution(key: str, record: VersionRecord):
        if not record.distribution_allowed or not record.url:
            raise DistributionDeniedError(
                f"模组 {record.name} ({key}) 不允许第三方分发，请将文件放入 overrides/mods/",
                context={"mod": key, "mod_id": str(record.mod_id)},
            )

    def _check_incompatibilities(
        self,
        nodes: Dict[str, _Node],
        incompatibilities: List[Tuple[str, DependencyRef]],
    ):
        conflicts = []
        for requester, dep in incompatibilities:
            target = None
            if dep.project_id is not None:
                target = self._claimed.get((dep.platform, dep.project_id))
            else:
                for key, node in sorted(nodes.items()):
                    if (
                        node.record.platform is dep.platform
                        and node.record.mod_id.version_id == dep.version_id
                    ):
                        target = key
                        break
            if target is not None and target in nodes and target != requester:
                conflicts.append((requester, target))

        for requester, target in conflicts:
            logger.error(f"[解析] {requester} 与 {target} 不兼容")
        if conflicts:
            requester, target = conflicts[0]
            raise IncompatibleModsError(
                f"模组 {requester} 声明与 {target} 不兼容，但两者都在整合包中",
                requester=requester,
                dependency=target,
            )

    @staticmethod
    def _compute_sides(nodes: Dict[str, _Node], edges: List[_Edge]) -> Dict[str, Sides]:
        """
        计算每个模组的端需求

        直接模组：显式配置优先，其次平台元数据。
        传递依赖：所有引入边贡献的并（可选依赖边最多贡献 OPTIONAL），
        再与依赖自身的平台元数据取交。迭代至不动点。
        """
        sides: Dict[str, Sides] = {}
        incoming: Dict[str, List[_Edge]] = {key: [] for key in nodes}
        for edge in edges:
            incoming[edge.target].append(edge)

        for key, node in nodes.items():
            if node.ref is not None:
                sides[key] = node.ref.effective_sides(node.record.side_hint)
            else:
                sides[key] = Sides.unsupported()

        transitive = sorted(key for key, node in nodes.items() if not node.direct)
        changed = True
        while changed:
            changed = False
            for key in transitive:
                demand = Sides.unsupported()
                for edge in incoming[key]:
                    contribution = sides[edge.requester]
                    if edge.kind is DependencyKind.OPTIONAL:
                        contribution = contribution.meet(_OPTIONAL_CAP)
                    demand = demand.join(contribution)
                updated = demand.meet(nodes[key].record.side_hint.resolve())
                if updated != sides[key]:
                    sides[key] = updated
                    changed = True
        return sides
