"""顶点分类：约束顶点（固定）与自由顶点"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Sequence

from .param_mesh import ParamMesh, Vertex

logger = logging.getLogger(__name__)

UNSET_SCALAR = -1.0


@dataclass
class ConstrainedVertex:
    """约束顶点：(顶点, 目标标量)，不拥有顶点"""
    vertex: Vertex
    scalar: float


def make_constraints(mesh: ParamMesh, values: Dict[int, float]) -> List[ConstrainedVertex]:
    """
    由 {顶点句柄: 目标值} 构建约束列表

    Args:
        mesh: 网格
        values: 顶点句柄到目标标量的映射

    Returns:
        约束顶点列表（按字典顺序）
    """
    return [ConstrainedVertex(mesh.vertex(int(h)), float(v)) for h, v in values.items()]


def index_mesh_vertices(mesh: ParamMesh) -> int:
    """按网格迭代顺序编号，并重置所有顶点的状态"""
    i = 0
    for vertex in mesh.vertices():
        vertex.is_parameterized = False
        vertex.s = UNSET_SCALAR
        vertex.index = i
        i += 1
    return i


def set_scalar_for_constraints(mesh: ParamMesh, constraints: Sequence[ConstrainedVertex]) -> None:
    """为约束顶点设置标量并标记为已固定，重复约束以最后一次为准"""
    seen = set()
    for vc in constraints:
        vh = vc.vertex
        if not mesh.owns(vh):
            raise ValueError(f"约束顶点 {vh.handle} 不属于该网格")
        if vh.handle in seen:
            logger.warning(f"顶点 {vh.handle} 被重复约束，使用最后一次的值 {vc.scalar}")
        seen.add(vh.handle)

        vh.is_parameterized = True
        vh.s = float(vc.scalar)


def classify(mesh: ParamMesh, constraints: Sequence[ConstrainedVertex]) -> int:
    """
    顶点分类

    1. 按迭代顺序分配 0 起始的索引
    2. 所有顶点重置为自由、标量为 -1
    3. 约束顶点标记为固定并写入目标值

    Returns:
        顶点数
    """
    n = index_mesh_vertices(mesh)
    set_scalar_for_constraints(mesh, constraints)
    return n


def free_vertices(mesh: ParamMesh) -> List[Vertex]:
    return [v for v in mesh.vertices() if not v.is_parameterized]
