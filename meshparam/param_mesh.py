"""参数化网格数据结构

为参数化计算提供所需的最小拓扑接口：
- 确定性的顶点迭代顺序（即输入顶点数组的顺序）
- 每个顶点的有序一环邻域（按面朝向逆时针排列）
- 每个顶点可读写的 index / s / is_parameterized 字段

边界顶点的一环是开放的扇形：首尾两个邻居之间没有三角面。
"""
import logging
import numpy as np
import trimesh
from typing import Dict, Iterator, List, Optional, Sequence, Tuple
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Vertex:
    """网格顶点"""
    handle: int  # 顶点在网格中的位置（调用方拥有，跨计算稳定）
    point: np.ndarray  # 3D坐标
    index: int = -1  # 每次计算开始时由引擎重新分配
    s: float = -1.0  # 标量场取值
    is_parameterized: bool = False  # 是否已固定（约束）或已求解


class ParamMesh:
    """带有序一环邻域的三角网格"""

    def __init__(
        self,
        points: np.ndarray,
        rings: Sequence[Sequence[int]],
        closed: Optional[Sequence[bool]] = None,
        faces: Optional[np.ndarray] = None
    ):
        """
        Args:
            points: 顶点坐标 (N, 3)，(N, 2) 会补 z=0
            rings: 每个顶点的有序邻居句柄列表
            closed: 每个一环是否闭合，默认长度>=3的环视为闭合
            faces: 三角面索引（可选，用于导出和变形统计）
        """
        points = np.asarray(points, dtype=np.float64)
        if points.ndim != 2 or points.shape[1] not in (2, 3):
            raise ValueError(f"points 须为 (N, 2) 或 (N, 3) 数组, 实际 shape: {points.shape}")
        if points.shape[1] == 2:
            points = np.column_stack([points, np.zeros(len(points))])

        n = len(points)
        if len(rings) != n:
            raise ValueError(f"rings 数量 ({len(rings)}) 与顶点数 ({n}) 不一致")

        self._vertices = [Vertex(handle=i, point=points[i].copy()) for i in range(n)]
        self._rings: List[List[int]] = []
        for i, ring in enumerate(rings):
            ring = [int(j) for j in ring]
            for j in ring:
                if j < 0 or j >= n or j == i:
                    raise ValueError(f"顶点 {i} 的邻居 {j} 无效")
            self._rings.append(ring)

        if closed is None:
            closed = [len(ring) >= 3 for ring in self._rings]
        self._closed = [bool(c) for c in closed]

        # 邻居句柄 -> 在一环中的位置
        self._ring_positions: List[Dict[int, int]] = [
            {j: k for k, j in enumerate(ring)} for ring in self._rings
        ]
        self._faces = None if faces is None else np.asarray(faces, dtype=np.int64).reshape(-1, 3)

    @classmethod
    def from_faces(cls, vertices: np.ndarray, faces: np.ndarray) -> 'ParamMesh':
        """由顶点和三角面数组构建网格，面须朝向一致"""
        vertices = np.asarray(vertices, dtype=np.float64)
        faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
        n = len(vertices)

        # 每个顶点周围的扇形有向边：面 (i, a, b) 给出 a -> b
        fan_edges: List[Dict[int, int]] = [dict() for _ in range(n)]
        for face in faces:
            for k in range(3):
                i = int(face[k])
                a = int(face[(k + 1) % 3])
                b = int(face[(k + 2) % 3])
                fan_edges[i][a] = b

        rings = []
        closed = []
        for i in range(n):
            ring, is_closed = cls._walk_fan(i, fan_edges[i])
            rings.append(ring)
            closed.append(is_closed)

        return cls(vertices, rings, closed=closed, faces=faces)

    @classmethod
    def from_trimesh(cls, mesh: trimesh.Trimesh) -> 'ParamMesh':
        """由 trimesh 网格构建"""
        return cls.from_faces(np.asarray(mesh.vertices), np.asarray(mesh.faces))

    @staticmethod
    def _walk_fan(i: int, next_of: Dict[int, int]) -> Tuple[List[int], bool]:
        """沿扇形有向边走一圈，得到有序一环"""
        if not next_of:
            return [], False

        targets = set(next_of.values())
        # 边界顶点：从没有前驱的邻居开始
        starts = [a for a in next_of if a not in targets]
        start = starts[0] if starts else next(iter(next_of))

        ring = [start]
        visited = {start}
        current = start
        while current in next_of:
            nxt = next_of[current]
            if nxt == start or nxt in visited:
                break
            ring.append(nxt)
            visited.add(nxt)
            current = nxt

        is_closed = not starts and next_of.get(ring[-1]) == start

        if len(set(next_of) | targets) > len(ring):
            logger.warning(f"顶点 {i} 是非流形顶点，只保留第一个扇形")

        return ring, is_closed

    def __len__(self) -> int:
        return len(self._vertices)

    def vertices(self) -> Iterator[Vertex]:
        """按确定性顺序迭代所有顶点"""
        return iter(self._vertices)

    def vertex(self, handle: int) -> Vertex:
        return self._vertices[handle]

    def owns(self, vertex: Vertex) -> bool:
        """顶点是否属于本网格"""
        h = vertex.handle
        return 0 <= h < len(self._vertices) and self._vertices[h] is vertex

    def neighbors(self, vertex: Vertex) -> List[Vertex]:
        """有序一环邻居"""
        return [self._vertices[j] for j in self._rings[vertex.handle]]

    def degree(self, vertex: Vertex) -> int:
        return len(self._rings[vertex.handle])

    def is_boundary(self, vertex: Vertex) -> bool:
        return not self._closed[vertex.handle]

    def edge_wing(self, vi: Vertex, vj: Vertex) -> Tuple[Optional[Vertex], Optional[Vertex]]:
        """
        边 (i, j) 两侧三角面的第三个顶点

        Returns:
            (prev, next)：三角面 (i, prev, j) 和 (i, j, next) 的顶点，
            边界上缺失的一侧为 None
        """
        ring = self._rings[vi.handle]
        k = self._ring_positions[vi.handle].get(vj.handle)
        if k is None:
            raise ValueError(f"({vi.handle}, {vj.handle}) 不是网格中的边")

        m = len(ring)
        is_closed = self._closed[vi.handle]
        prev_v = self._vertices[ring[k - 1]] if (k > 0 or is_closed) else None
        next_v = self._vertices[ring[(k + 1) % m]] if (k < m - 1 or is_closed) else None
        return prev_v, next_v

    def boundary_loops(self) -> List[List[int]]:
        """按面朝向提取所有边界环（顶点句柄列表）"""
        visited = set()
        loops = []
        for v in self._vertices:
            h = v.handle
            if h in visited or self._closed[h] or not self._rings[h]:
                continue

            loop = []
            current = h
            while current not in visited:
                visited.add(current)
                loop.append(current)
                if self._closed[current] or not self._rings[current]:
                    break
                # 边界有向边 current -> ring[0]
                current = self._rings[current][0]

            if len(loop) >= 3:
                loops.append(loop)
        return loops

    @property
    def points(self) -> np.ndarray:
        return np.array([v.point for v in self._vertices]).reshape(-1, 3)

    @property
    def faces(self) -> Optional[np.ndarray]:
        return self._faces

    def scalars(self) -> np.ndarray:
        """所有顶点的标量值"""
        return np.array([v.s for v in self._vertices], dtype=np.float64)

    def parameterized_mask(self) -> np.ndarray:
        return np.array([v.is_parameterized for v in self._vertices], dtype=bool)

    def to_trimesh(self) -> trimesh.Trimesh:
        """转换为 trimesh 网格（需要面信息）"""
        if self._faces is None:
            raise ValueError("网格没有面信息，无法转换为 trimesh")
        return trimesh.Trimesh(vertices=self.points, faces=self._faces, process=False)
