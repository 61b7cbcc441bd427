"""
平台数据模型

定义两个模组平台共用的标识符、依赖、文件与版本信息。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Dict, List, Optional, Tuple, Union

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1


class Platform(Enum):
    """模组托管平台"""

    CURSEFORGE = "curseforge"
    MODRINTH = "modrinth"


class SideRequirement(Enum):
    """
    模组在某一端（客户端或服务端）上的需求程度。

    构成全序 REQUIRED > OPTIONAL > UNSUPPORTED，join 取较大者，meet 取较小者。
    """

    REQUIRED = "required"
    OPTIONAL = "optional"
    UNSUPPORTED = "unsupported"

    @property
    def rank(self) -> int:
        return _SIDE_RANK[self]

    def join(self, other: "SideRequirement") -> "SideRequirement":
        return self if self.rank >= other.rank else other

    def meet(self, other: "SideRequirement") -> "SideRequirement":
        return self if self.rank <= other.rank else other

    @property
    def supported(self) -> bool:
        return self is not SideRequirement.UNSUPPORTED


_SIDE_RANK = {
    SideRequirement.UNSUPPORTED: 0,
    SideRequirement.OPTIONAL: 1,
    SideRequirement.REQUIRED: 2,
}


class Side(Enum):
    """输出目标所在的一端"""

    CLIENT = "client"
    SERVER = "server"


@dataclass(frozen=True)
class Sides:
    """客户端与服务端各自的需求"""

    client: SideRequirement = SideRequirement.REQUIRED
    server: SideRequirement = SideRequirement.REQUIRED

    def get(self, side: Side) -> SideRequirement:
        return self.client if side is Side.CLIENT else self.server

    def join(self, other: "Sides") -> "Sides":
        return Sides(self.client.join(other.client), self.server.join(other.server))

    def meet(self, other: "Sides") -> "Sides":
        return Sides(self.client.meet(other.client), self.server.meet(other.server))

    @classmethod
    def unsupported(cls) -> "Sides":
        return cls(SideRequirement.UNSUPPORTED, SideRequirement.UNSUPPORTED)


@dataclass(frozen=True)
class SideHint:
    """平台报告的端信息，None 表示平台未记录"""

    client: Optional[SideRequirement] = None
    server: Optional[SideRequirement] = None

    def overlay(self, base: "SideHint") -> "SideHint":
        """以自身为准，缺失的一端回落到 base"""
        return SideHint(
            client=self.client if self.client is not None else base.client,
            server=self.server if self.server is not None else base.server,
        )

    def resolve(self) -> Sides:
        """未知的一端视为必需"""
        return Sides(
            client=self.client or SideRequirement.REQUIRED,
            server=self.server or SideRequirement.REQUIRED,
        )


@dataclass(frozen=True)
class CurseForgeModId:
    """CurseForge 项目/文件 ID，均为 32 位有符号整数"""

    platform: ClassVar[Platform] = Platform.CURSEFORGE

    project_id: int
    version_id: int

    def __post_init__(self):
        for value in (self.project_id, self.version_id):
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"CurseForge ID 必须为整数: {value!r}")
            if not INT32_MIN <= value <= INT32_MAX:
                raise ValueError(f"CurseForge ID 超出 32 位范围: {value}")

    @property
    def project_key(self) -> Tuple[Platform, int]:
        return (self.platform, self.project_id)

    def __str__(self) -> str:
        return f"curseforge:{self.project_id}/{self.version_id}"


@dataclass(frozen=True)
class ModrinthModId:
    """Modrinth 项目/版本 ID，均为不透明字符串"""

    platform: ClassVar[Platform] = Platform.MODRINTH

    project_id: str
    version_id: str

    def __post_init__(self):
        for value in (self.project_id, self.version_id):
            if not isinstance(value, str):
                raise TypeError(f"Modrinth ID 必须为字符串: {value!r}")
            if not value:
                raise ValueError("Modrinth ID 不能为空")

    @property
    def project_key(self) -> Tuple[Platform, str]:
        return (self.platform, self.project_id)

    def __str__(self) -> str:
        return f"modrinth:{self.project_id}/{self.version_id}"


PlatformModId = Union[CurseForgeModId, ModrinthModId]
ProjectKey = Tuple[Platform, Union[int, str]]


def make_mod_id(
    platform: Platform, project_id: Union[int, str], version_id: Union[int, str]
) -> PlatformModId:
    """按平台构造对应的模组 ID"""
    if platform is Platform.CURSEFORGE:
        return CurseForgeModId(project_id, version_id)  # type: ignore[arg-type]
    return ModrinthModId(project_id, version_id)  # type: ignore[arg-type]


class DependencyKind(Enum):
    """依赖类型"""

    REQUIRED = "required"
    OPTIONAL = "optional"
    INCOMPATIBLE = "incompatible"
    OTHER = "other"  # embedded, tool, include


@dataclass(frozen=True)
class DependencyId:
    """配置中被忽略的依赖，按项目或按版本"""

    project_id: Optional[Union[int, str]] = None
    version_id: Optional[Union[int, str]] = None


@dataclass(frozen=True)
class DependencyRef:
    """版本记录中声明的一条依赖边"""

    platform: Platform
    kind: DependencyKind
    project_id: Optional[Union[int, str]] = None
    version_id: Optional[Union[int, str]] = None

    def matches(self, ignored: DependencyId) -> bool:
        if ignored.project_id is not None and ignored.project_id == self.project_id:
            return True
        if ignored.version_id is not None and ignored.version_id == self.version_id:
            return True
        return False

    def __str__(self) -> str:
        if self.project_id is not None:
            return f"{self.platform.value}:{self.project_id}"
        return f"{self.platform.value}:version/{self.version_id}"


@dataclass(frozen=True)
class FileHashes:
    """平台声明的文件哈希"""

    sha1: Optional[str] = None
    sha512: Optional[str] = None
    md5: Optional[str] = None

    def declared(self) -> Dict[str, str]:
        return {
            algo: value.lower()
            for algo, value in (
                ("sha1", self.sha1),
                ("sha512", self.sha512),
                ("md5", self.md5),
            )
            if value
        }


@dataclass
class ProjectInfo:
    """
    模组项目信息。
    """

    id: Union[int, str]
    name: str
    slug: Optional[str]
    side_hint: SideHint = field(default_factory=SideHint)
    distribution_allowed: bool = True


@dataclass
class VersionRecord:
    """
    模组版本信息，两个平台归一化后的统一形式。
    """

    mod_id: PlatformModId
    name: str
    filename: str
    url: Optional[str]
    size: int
    hashes: FileHashes
    dependencies: List[DependencyRef] = field(default_factory=list)
    game_versions: List[str] = field(default_factory=list)
    side_hint: SideHint = field(default_factory=SideHint)
    slug: Optional[str] = None
    distribution_allowed: bool = True

    @property
    def platform(self) -> Platform:
        return self.mod_id.platform
