"""3D模型加载模块"""
import logging
import trimesh
from pathlib import Path
from typing import Optional, Union

from .param_mesh import ParamMesh

logger = logging.getLogger(__name__)


class MeshLoader:
    """网格加载器，支持STL、3MF、OBJ等格式"""

    SUPPORTED_FORMATS = {'.stl', '.3mf', '.obj', '.ply', '.off'}

    @classmethod
    def load(cls, filepath: Union[str, Path]) -> Optional[trimesh.Trimesh]:
        """
        加载3D模型文件

        不做网格修复，只保留 trimesh 加载时默认的顶点合并。

        Args:
            filepath: 文件路径

        Returns:
            trimesh.Trimesh对象，加载失败返回None
        """
        path = Path(filepath)

        if not path.exists():
            logger.error(f"文件不存在: {filepath}")
            return None

        suffix = path.suffix.lower()
        if suffix not in cls.SUPPORTED_FORMATS:
            logger.error(f"不支持的格式: {suffix}")
            return None

        try:
            mesh = trimesh.load(str(path), force='mesh')
        except (OSError, ValueError, KeyError, IndexError) as e:
            logger.error(f"加载模型失败: {e}")
            return None

        # 如果加载的是场景，提取第一个网格
        if isinstance(mesh, trimesh.Scene):
            if len(mesh.geometry) > 0:
                mesh = list(mesh.geometry.values())[0]
            else:
                logger.error("场景中没有几何体")
                return None

        if not isinstance(mesh, trimesh.Trimesh) or len(mesh.faces) == 0:
            logger.error("无法解析为三角网格")
            return None

        logger.info(f"已加载 {path.name}: {len(mesh.vertices)} 个顶点, {len(mesh.faces)} 个面")
        return mesh

    @classmethod
    def to_param_mesh(cls, mesh: trimesh.Trimesh) -> ParamMesh:
        """转换为参数化网格（顶点顺序与 trimesh 一致）"""
        return ParamMesh.from_trimesh(mesh)

    @classmethod
    def get_mesh_info(cls, mesh: trimesh.Trimesh) -> dict:
        """获取网格信息"""
        return {
            'vertices': len(mesh.vertices),
            'faces': len(mesh.faces),
            'bounds': mesh.bounds.tolist(),
            'is_watertight': mesh.is_watertight,
            'euler_number': int(mesh.euler_number),
            'area': float(mesh.area),
        }
