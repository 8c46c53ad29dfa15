"""文件导出模块"""
import csv
import logging
import numpy as np
import trimesh
import ezdxf
from pathlib import Path
from typing import List, Optional, Union

from .param_mesh import ParamMesh

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def boundary_edges(faces: np.ndarray) -> np.ndarray:
    """只被一个面使用的边"""
    faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    edges = np.vstack([faces[:, [0, 1]], faces[:, [1, 2]], faces[:, [2, 0]]])
    edges = np.sort(edges, axis=1)
    unique, counts = np.unique(edges, axis=0, return_counts=True)
    return unique[counts == 1]


class Exporter:
    """文件导出器"""

    @staticmethod
    def export_scalars_csv(filepath: PathLike, mesh: ParamMesh) -> bool:
        """
        导出每个顶点的标量值

        列: handle, x, y, z, s, is_parameterized

        Returns:
            是否成功
        """
        try:
            with open(filepath, 'w', newline='', encoding='utf-8') as f:
                writer = csv.writer(f)
                writer.writerow(['handle', 'x', 'y', 'z', 's', 'is_parameterized'])
                rows = zip(mesh.vertices(), mesh.points, mesh.scalars(), mesh.parameterized_mask())
                for v, p, s, done in rows:
                    writer.writerow([
                        v.handle,
                        f"{p[0]:.6f}", f"{p[1]:.6f}", f"{p[2]:.6f}",
                        repr(float(s)),
                        int(done)
                    ])
            return True
        except OSError as e:
            logger.error(f"导出标量CSV失败: {e}")
            return False

    @staticmethod
    def export_uv_csv(filepath: PathLike, uv: np.ndarray) -> bool:
        """导出UV坐标（列: handle, u, v）"""
        try:
            uv = np.asarray(uv, dtype=np.float64).reshape(-1, 2)
            with open(filepath, 'w', newline='', encoding='utf-8') as f:
                writer = csv.writer(f)
                writer.writerow(['handle', 'u', 'v'])
                for i, (u, v) in enumerate(uv):
                    writer.writerow([i, repr(float(u)), repr(float(v))])
            return True
        except OSError as e:
            logger.error(f"导出UV CSV失败: {e}")
            return False

    @staticmethod
    def export_uv_dxf(
        filepath: PathLike,
        uv: np.ndarray,
        faces: np.ndarray,
        scale: float = 1.0
    ) -> bool:
        """
        导出展开后的三角网格为DXF格式

        Args:
            filepath: 保存路径
            uv: UV坐标 (N, 2)
            faces: 面索引
            scale: 缩放因子（mm）

        Returns:
            是否成功
        """
        try:
            doc = ezdxf.new(dxfversion='R2010')
            msp = doc.modelspace()

            # 设置单位为毫米 (INSUNITS = 4 表示毫米)
            doc.header['$INSUNITS'] = 4
            doc.header['$MEASUREMENT'] = 1

            doc.layers.add('UV_FACES', color=7)
            doc.layers.add('BOUNDARY', color=1)  # 红色

            points = np.asarray(uv, dtype=np.float64).reshape(-1, 2) * scale
            faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)

            for face in faces:
                msp.add_lwpolyline(
                    [tuple(points[i]) for i in face],
                    close=True,
                    dxfattribs={'layer': 'UV_FACES'}
                )

            for a, b in boundary_edges(faces):
                msp.add_line(
                    tuple(points[a]), tuple(points[b]),
                    dxfattribs={'layer': 'BOUNDARY', 'lineweight': 50}
                )

            if len(points):
                size = points.max(axis=0) - points.min(axis=0)
                logger.debug(f"DXF导出尺寸 (mm): X范围={size[0]:.2f}, Y范围={size[1]:.2f}")

            doc.saveas(str(filepath))
            return True

        except (OSError, ezdxf.DXFError) as e:
            logger.error(f"导出DXF失败: {e}")
            return False

    @staticmethod
    def export_uv_mesh(filepath: PathLike, mesh: ParamMesh, uv: np.ndarray) -> bool:
        """导出带UV纹理坐标的网格（建议使用 .obj）"""
        try:
            tm = mesh.to_trimesh()
            tm.visual = trimesh.visual.TextureVisuals(uv=np.asarray(uv, dtype=np.float64).reshape(-1, 2))
            tm.export(str(filepath))
            return True
        except (OSError, ValueError) as e:
            logger.error(f"导出网格失败: {e}")
            return False

    @staticmethod
    def read_scalars_csv(filepath: PathLike) -> Optional[List[float]]:
        """读取 export_scalars_csv 导出的标量值"""
        try:
            with open(filepath, 'r', newline='', encoding='utf-8') as f:
                return [float(row['s']) for row in csv.DictReader(f)]
        except (OSError, KeyError, ValueError) as e:
            logger.error(f"读取标量CSV失败: {e}")
            return None
