"""参数化计算引擎

流程：输入检查 -> 顶点分类 -> 装配（一般形式与对称形式）-> 求解分派 -> 写回。
任何一步失败都会恢复网格的原始状态，只有整体成功才写回标量场。
"""
import json
import logging
import math
import time
import numpy as np
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .classifier import ConstrainedVertex, classify, make_constraints
from .dispatcher import (
    GENERAL_DIRECT,
    SolveResult,
    SolveStatus,
    SolverDispatcher,
    uses_symmetric_form,
)
from .linsolve import SolverContext
from .param_mesh import ParamMesh
from .system import SparseSystem, SymmetricSparseSystem, SystemAssembler
from .weights import get_weight_function, is_symmetric_weight, resolve_weight_option

logger = logging.getLogger(__name__)


@dataclass
class ParamConfig:
    """参数化配置"""
    weight_option: int = 2  # 权重方案编码，默认 Tutte
    solver_type: str = GENERAL_DIRECT
    max_workers: int = 1  # 行装配线程数
    ordering: str = "COLAMD"
    pivot_tolerance: float = 1e-12
    iterative_tol: float = 1e-10
    iterative_maxiter: Optional[int] = None
    iterative_restart: int = 20

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ParamConfig':
        names = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - names)
        if unknown:
            logger.warning(f"忽略未知配置项: {unknown}")
        return cls(**{k: v for k, v in data.items() if k in names})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def load(cls, filepath: Union[str, Path]) -> 'ParamConfig':
        """从 JSON 文件读取配置"""
        with open(filepath, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"配置文件须为 JSON 对象: {filepath}")
        return cls.from_dict(data)

    def save(self, filepath: Union[str, Path]) -> None:
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

    def to_solver_context(self) -> SolverContext:
        return SolverContext(
            ordering=self.ordering,
            pivot_tolerance=self.pivot_tolerance,
            iterative_tol=self.iterative_tol,
            iterative_maxiter=self.iterative_maxiter,
            iterative_restart=self.iterative_restart
        )


class ParameterizationError(Exception):
    """参数化失败，携带求解结果"""

    def __init__(self, result: SolveResult):
        super().__init__(f"{result.status.name}: {result.message}")
        self.result = result


# 网格状态快照: (index, s, is_parameterized)
MeshSnapshot = List[Tuple[int, float, bool]]


def snapshot_mesh(mesh: ParamMesh) -> MeshSnapshot:
    return [(v.index, v.s, v.is_parameterized) for v in mesh.vertices()]


def restore_mesh(mesh: ParamMesh, snapshot: MeshSnapshot) -> None:
    for v, (index, s, pinned) in zip(mesh.vertices(), snapshot):
        v.index = index
        v.s = s
        v.is_parameterized = pinned


class ParameterizationEngine:
    """参数化计算引擎"""

    def __init__(self, config: Optional[ParamConfig] = None):
        self.config = config if config is not None else ParamConfig()
        self.weight_option = resolve_weight_option(self.config.weight_option)
        self.weight_function = get_weight_function(self.config.weight_option)

    def _validate(
        self,
        mesh: ParamMesh,
        constraints: Sequence[ConstrainedVertex],
        c_values: Optional[np.ndarray]
    ) -> Optional[str]:
        """检查输入，返回错误信息（None 表示通过）"""
        if len(mesh) == 0:
            return "网格没有顶点"

        for vc in constraints:
            if not mesh.owns(vc.vertex):
                return f"约束顶点 {vc.vertex.handle} 不属于该网格"
            if not math.isfinite(vc.scalar):
                return f"约束顶点 {vc.vertex.handle} 的目标值无效: {vc.scalar}"

        if c_values is not None:
            c = np.asarray(c_values, dtype=np.float64).reshape(-1)
            if c.size and c.size != len(mesh):
                return f"c_values 长度 ({c.size}) 与顶点数 ({len(mesh)}) 不一致"
            if not np.all(np.isfinite(c)):
                return "c_values 包含非有限值"
        return None

    def compute(
        self,
        mesh: ParamMesh,
        constraints: Sequence[ConstrainedVertex],
        c_values: Optional[np.ndarray] = None,
        solver_type: Optional[str] = None
    ) -> SolveResult:
        """
        计算标量场

        Args:
            mesh: 参数化网格，成功时写回每个顶点的 s
            constraints: 约束顶点
            c_values: 每个顶点的目标量（Poisson 形式，可选）
            solver_type: 求解策略，默认使用配置中的策略

        Returns:
            SolveResult，status 为 0 表示成功
        """
        strategy = solver_type if solver_type is not None else self.config.solver_type

        error = self._validate(mesh, constraints, c_values)
        if error is not None:
            logger.error(f"输入无效: {error}")
            return SolveResult(SolveStatus.INVALID_INPUT, error, strategy=strategy)

        if uses_symmetric_form(strategy) and not is_symmetric_weight(self.weight_option):
            logger.warning(
                f"权重方案 {self.weight_option.name} 不对称，symmetric-direct 的结果只对应矩阵的下三角"
            )

        snapshot = snapshot_mesh(mesh)
        try:
            result = self._run(mesh, constraints, c_values, strategy)
        except Exception:
            restore_mesh(mesh, snapshot)
            raise
        if not result.ok:
            restore_mesh(mesh, snapshot)
        return result

    def _run(
        self,
        mesh: ParamMesh,
        constraints: Sequence[ConstrainedVertex],
        c_values: Optional[np.ndarray],
        strategy: str
    ) -> SolveResult:
        total_start = time.perf_counter()

        start = time.perf_counter()
        n = classify(mesh, constraints)
        logger.debug(f"顶点分类: {n} 个顶点, {len(constraints)} 个约束, {time.perf_counter() - start:.4f} 秒")

        assembler = SystemAssembler(self.weight_function, max_workers=self.config.max_workers)

        start = time.perf_counter()
        general = SparseSystem(n)
        report = assembler.assemble(general, mesh, constraints, c_values)
        logger.debug(f"一般形式装配: nnz={general.nnz}, {time.perf_counter() - start:.4f} 秒")

        start = time.perf_counter()
        symmetric = SymmetricSparseSystem(n)
        sym_report = assembler.assemble_symmetric(symmetric, mesh, constraints, c_values)
        logger.debug(f"对称形式装配: nnz={symmetric.nnz}, {time.perf_counter() - start:.4f} 秒")

        if not (report.ok and sym_report.ok):
            failed = sorted(set(report.failed_vertices) | set(sym_report.failed_vertices))
            return SolveResult(
                SolveStatus.DEGENERATE_TOPOLOGY,
                f"{len(failed)} 个自由顶点的邻居少于2个: {failed[:10]}",
                strategy=strategy
            )

        dispatcher = SolverDispatcher(self.config.to_solver_context())
        result = dispatcher.solve(general, symmetric, strategy)
        if not result.ok:
            return result

        # 写回实际求解的方程组的解
        x = result.solution
        for v in mesh.vertices():
            v.s = float(x[v.index])
            v.is_parameterized = True

        logger.info(f"参数化完成: {n} 个顶点, 策略 {strategy}, 共 {time.perf_counter() - total_start:.4f} 秒")
        return result


def compute_scalar_field(
    mesh: ParamMesh,
    values: Dict[int, float],
    config: Optional[ParamConfig] = None,
    c_values: Optional[np.ndarray] = None
) -> np.ndarray:
    """
    便捷函数：按 {顶点句柄: 目标值} 计算标量场

    Raises:
        ParameterizationError: 计算失败
    """
    engine = ParameterizationEngine(config)
    result = engine.compute(mesh, make_constraints(mesh, values), c_values)
    if not result.ok:
        raise ParameterizationError(result)
    return mesh.scalars()
