"""稀疏线性方程组的装配

对每个自由顶点 i 遍历其一环，按权重方案写入一行：
    A[i][j] = w_ij = -weight(i, j)
    A[i][i] = w_ii = -sum(w_ij)
对每个约束顶点 i 写入单位行 A[i][i] = 1, B[i] = 目标值。

同时提供一般形式 (A) 与对称形式 (SA) 两种装配；对称形式只保存下三角，
指向约束顶点的系数移到右端项中，使矩阵保持对称。
"""
import logging
import numpy as np
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from scipy.sparse import csc_matrix, diags, lil_matrix

from .classifier import ConstrainedVertex, free_vertices
from .param_mesh import ParamMesh, Vertex
from .weights import WeightFunction

logger = logging.getLogger(__name__)


class SparseSystem:
    """一般形式的稀疏方程组 A x = B"""

    def __init__(self, n: int):
        self.n = n
        self._A = lil_matrix((n, n), dtype=np.float64)
        self.B = np.zeros(n, dtype=np.float64)

    def set_coef(self, i: int, j: int, value: float) -> None:
        """写入系数（覆盖语义）"""
        self._A[i, j] = value

    def get_coef(self, i: int, j: int) -> float:
        return float(self._A[i, j])

    def matrix(self) -> csc_matrix:
        """求解器使用的矩阵"""
        return self._A.tocsc()

    @property
    def nnz(self) -> int:
        return self._A.nnz


class SymmetricSparseSystem(SparseSystem):
    """对称形式的稀疏方程组，只保存下三角"""

    def set_coef(self, i: int, j: int, value: float) -> None:
        # 上三角的写入被忽略
        if j <= i:
            self._A[i, j] = value

    def get_coef(self, i: int, j: int) -> float:
        if j > i:
            i, j = j, i
        return float(self._A[i, j])

    def lower(self) -> csc_matrix:
        return self._A.tocsc()

    def matrix(self) -> csc_matrix:
        """完整对称矩阵 L + L^T - diag(L)"""
        L = self._A.tocsc()
        return (L + L.T - diags(L.diagonal())).tocsc()


@dataclass
class RowCoefficients:
    """自由顶点 i 的一行系数"""
    index: int
    columns: List[int]
    weights: List[float]
    pinned: List[bool]  # 对应邻居是否为约束顶点
    neighbor_scalars: List[float]
    diagonal: float

    @property
    def degree(self) -> int:
        return len(self.columns)

    @property
    def ok(self) -> bool:
        # 少于两个邻居说明局部拓扑退化（非三角网格）
        return self.degree >= 2


@dataclass
class AssemblyReport:
    """装配结果"""
    n_rows: int
    n_free: int
    failed_vertices: List[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed_vertices


class SystemAssembler:
    """方程组装配器"""

    def __init__(self, weight_function: WeightFunction, max_workers: int = 1):
        self.weight_function = weight_function
        self.max_workers = max(1, int(max_workers))

    def compute_row(self, mesh: ParamMesh, vertex: Vertex) -> RowCoefficients:
        """计算自由顶点的一行系数，不依赖其他行"""
        w_ii = 0.0
        columns = []
        weights = []
        pinned = []
        scalars = []
        for vj in mesh.neighbors(vertex):
            w_ij = -1.0 * self.weight_function(mesh, vertex, vj)
            # w_ii = - sum of w_ij
            w_ii -= w_ij
            columns.append(vj.index)
            weights.append(w_ij)
            pinned.append(vj.is_parameterized)
            scalars.append(vj.s)

        return RowCoefficients(
            index=vertex.index,
            columns=columns,
            weights=weights,
            pinned=pinned,
            neighbor_scalars=scalars,
            diagonal=w_ii
        )

    def _compute_rows(self, mesh: ParamMesh) -> List[RowCoefficients]:
        inner = free_vertices(mesh)
        if self.max_workers > 1 and len(inner) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                return list(pool.map(lambda v: self.compute_row(mesh, v), inner))
        return [self.compute_row(mesh, v) for v in inner]

    @staticmethod
    def _init_constrained_rows(system: SparseSystem, constraints: Sequence[ConstrainedVertex]) -> None:
        """约束顶点的行: s = 常数"""
        for vc in constraints:
            index = vc.vertex.index
            system.set_coef(index, index, 1.0)
            system.B[index] = vc.scalar

    @staticmethod
    def _check_c_values(c_values: Optional[np.ndarray], n: int) -> Optional[np.ndarray]:
        if c_values is None:
            return None
        c_values = np.asarray(c_values, dtype=np.float64).reshape(-1)
        if c_values.size == 0:
            return None
        if c_values.size != n:
            raise ValueError(f"c_values 长度 ({c_values.size}) 与顶点数 ({n}) 不一致")
        return c_values

    def assemble(
        self,
        system: SparseSystem,
        mesh: ParamMesh,
        constraints: Sequence[ConstrainedVertex],
        c_values: Optional[np.ndarray] = None
    ) -> AssemblyReport:
        """
        装配一般形式方程组

        Args:
            system: 待写入的方程组（n x n）
            mesh: 已分类的网格
            constraints: 约束顶点
            c_values: 每个顶点的目标量（提供时为 Poisson 形式，否则为 Laplace）

        Returns:
            装配报告，退化顶点记录在 failed_vertices 中
        """
        c_values = self._check_c_values(c_values, system.n)
        self._init_constrained_rows(system, constraints)

        rows = self._compute_rows(mesh)
        report = AssemblyReport(n_rows=system.n, n_free=len(rows))
        for row in rows:
            i = row.index
            for j, w_ij in zip(row.columns, row.weights):
                system.set_coef(i, j, w_ij)

            if not row.ok:
                report.failed_vertices.append(i)
                continue

            system.set_coef(i, i, row.diagonal)
            if c_values is not None:
                system.B[i] = abs(c_values[i])

        self._log_report("一般形式", report)
        return report

    def assemble_symmetric(
        self,
        system: SymmetricSparseSystem,
        mesh: ParamMesh,
        constraints: Sequence[ConstrainedVertex],
        c_values: Optional[np.ndarray] = None
    ) -> AssemblyReport:
        """
        装配对称形式方程组

        与一般形式相同，但指向约束顶点的系数不写入矩阵，
        而是以 w_ij * s_j 的形式移到右端项。
        """
        c_values = self._check_c_values(c_values, system.n)
        self._init_constrained_rows(system, constraints)

        rows = self._compute_rows(mesh)
        report = AssemblyReport(n_rows=system.n, n_free=len(rows))
        for row in rows:
            i = row.index
            folded = 0.0
            for j, w_ij, is_pinned, s_j in zip(row.columns, row.weights, row.pinned, row.neighbor_scalars):
                if is_pinned:
                    folded += w_ij * s_j
                else:
                    system.set_coef(i, j, w_ij)

            if not row.ok:
                report.failed_vertices.append(i)
                continue

            system.set_coef(i, i, row.diagonal)
            base = abs(c_values[i]) if c_values is not None else 0.0
            system.B[i] = base - folded

        self._log_report("对称形式", report)
        return report

    @staticmethod
    def _log_report(name: str, report: AssemblyReport) -> None:
        logger.debug(f"{name}装配: {report.n_rows} 行, 自由顶点 {report.n_free}")
        if not report.ok:
            logger.error(
                f"{name}装配: {len(report.failed_vertices)} 个顶点邻居少于2个 "
                f"(非三角网格), 例如 {report.failed_vertices[:5]}"
            )
