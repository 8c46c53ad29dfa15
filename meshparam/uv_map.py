"""调和映射曲面展开模块

把开放网格的最长边界环固定到单位圆上，分别对 u、v 两个分量求解一次
Laplace 方程组，得到 2D 展开坐标。权重方案决定展开的性质：
DCP 为离散共形（调和）映射，MVC 为均值坐标映射，Tutte 为重心嵌入。
"""
import logging
import numpy as np
import trimesh
from dataclasses import dataclass
from typing import List, Optional, Union

from .calculator import ParamConfig, ParameterizationEngine, ParameterizationError
from .classifier import ConstrainedVertex
from .dispatcher import SolveResult
from .param_mesh import ParamMesh
from .utils.geometry import circle_positions, triangle_angles, triangle_area

logger = logging.getLogger(__name__)


@dataclass
class FlattenResult:
    """展开结果"""
    uv_coords: np.ndarray  # UV坐标 (N, 2)
    faces: np.ndarray  # 面索引
    scale: float  # 缩放因子
    distortion: np.ndarray  # 各面的角度变形量
    u_result: Optional[SolveResult] = None
    v_result: Optional[SolveResult] = None


class HarmonicMapper:
    """边界固定在圆上的调和映射展开器"""

    def __init__(self, mesh: Union[ParamMesh, trimesh.Trimesh], config: Optional[ParamConfig] = None):
        if isinstance(mesh, trimesh.Trimesh):
            mesh = ParamMesh.from_trimesh(mesh)
        if mesh.faces is None:
            raise ValueError("展开需要带三角面的网格")

        self.mesh = mesh
        self.config = config if config is not None else ParamConfig()
        self.vertices = mesh.points
        self.faces = mesh.faces
        self.n_vertices = len(mesh)
        self.n_faces = len(self.faces)

    def find_boundary_loop(self) -> List[int]:
        """找到最长的边界环"""
        loops = self.mesh.boundary_loops()
        if not loops:
            return []
        return max(loops, key=len)

    def compute(
        self,
        fixed_vertices: Optional[List[int]] = None,
        fixed_positions: Optional[np.ndarray] = None
    ) -> FlattenResult:
        """
        计算展开

        Args:
            fixed_vertices: 固定的顶点句柄，默认为最长边界环
            fixed_positions: 固定顶点的UV坐标，默认按弦长分布在单位圆上

        Returns:
            展开结果

        Raises:
            ValueError: 网格没有边界且未指定固定顶点
            ParameterizationError: u 或 v 分量求解失败
        """
        if fixed_vertices is None:
            fixed_vertices = self.find_boundary_loop()
            if not fixed_vertices:
                raise ValueError("网格没有边界，无法固定到圆上")
            fixed_positions = circle_positions(self.vertices[fixed_vertices])
            logger.info(f"边界环: {len(fixed_vertices)} 个顶点固定到单位圆")
        else:
            fixed_positions = np.asarray(fixed_positions, dtype=np.float64).reshape(-1, 2)
            if len(fixed_positions) != len(fixed_vertices):
                raise ValueError(
                    f"固定顶点数 ({len(fixed_vertices)}) 与坐标数 ({len(fixed_positions)}) 不一致"
                )

        engine = ParameterizationEngine(self.config)
        uv = np.zeros((self.n_vertices, 2))
        results = []
        for axis in range(2):
            constraints = [
                ConstrainedVertex(self.mesh.vertex(int(h)), float(fixed_positions[k, axis]))
                for k, h in enumerate(fixed_vertices)
            ]
            result = engine.compute(self.mesh, constraints)
            if not result.ok:
                raise ParameterizationError(result)
            uv[:, axis] = self.mesh.scalars()
            results.append(result)

        # 计算变形
        distortion = self._compute_distortion(uv)

        # 计算缩放因子
        scale = self._compute_scale(uv)
        logger.info(f"展开完成: 缩放因子 {scale:.4f}, 平均角度变形 {distortion.mean() if len(distortion) else 0.0:.4f}")

        return FlattenResult(
            uv_coords=uv,
            faces=self.faces.copy(),
            scale=scale,
            distortion=distortion,
            u_result=results[0],
            v_result=results[1]
        )

    def _compute_distortion(self, uv: np.ndarray) -> np.ndarray:
        """计算各面的角度变形"""
        distortion = np.zeros(self.n_faces)

        for f_idx, face in enumerate(self.faces):
            angles_3d = triangle_angles(self.vertices[face])
            angles_2d = triangle_angles(uv[face])
            distortion[f_idx] = np.sum(np.abs(angles_3d - angles_2d))

        return distortion

    def _compute_scale(self, uv: np.ndarray) -> float:
        """计算3D到2D的缩放因子"""
        area_3d = 0.0
        area_2d = 0.0

        for face in self.faces:
            area_3d += triangle_area(*self.vertices[face])
            p = uv[face]
            # 2D三角形面积
            area_2d += 0.5 * abs(
                (p[1, 0] - p[0, 0]) * (p[2, 1] - p[0, 1]) -
                (p[2, 0] - p[0, 0]) * (p[1, 1] - p[0, 1])
            )

        if area_2d < 1e-10:
            return 1.0

        return float(np.sqrt(area_3d / area_2d))
