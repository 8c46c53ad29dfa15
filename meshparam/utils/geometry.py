"""几何工具函数"""
import numpy as np


def edge_length(a: np.ndarray, b: np.ndarray) -> float:
    """计算两点间的边长"""
    return float(np.linalg.norm(b - a))


def corner_angle(apex: np.ndarray, a: np.ndarray, b: np.ndarray) -> float:
    """
    计算顶点 apex 处，由 apex->a 与 apex->b 两条边夹成的角

    使用 atan2(|叉积|, 点积)，在角度接近 0 或 π 时比 arccos 更稳定

    Returns:
        角度（弧度），范围 [0, π]
    """
    v1 = a - apex
    v2 = b - apex
    sin_part = np.linalg.norm(np.cross(v1, v2))
    cos_part = np.dot(v1, v2)
    return float(np.arctan2(sin_part, cos_part))


def cotangent(apex: np.ndarray, a: np.ndarray, b: np.ndarray) -> float:
    """计算顶点 apex 处夹角的余切值"""
    v1 = a - apex
    v2 = b - apex
    cross_norm = np.linalg.norm(np.cross(v1, v2))
    return float(np.dot(v1, v2) / (cross_norm + 1e-10))


def triangle_area(p0: np.ndarray, p1: np.ndarray, p2: np.ndarray) -> float:
    """计算三角形面积"""
    return 0.5 * float(np.linalg.norm(np.cross(p1 - p0, p2 - p0)))


def triangle_angles(points: np.ndarray) -> np.ndarray:
    """计算三角形三个内角（2D 或 3D 均可）"""
    angles = np.zeros(3)
    for i in range(3):
        v1 = points[(i + 1) % 3] - points[i]
        v2 = points[(i + 2) % 3] - points[i]
        cos_angle = np.dot(v1, v2) / (np.linalg.norm(v1) * np.linalg.norm(v2) + 1e-10)
        angles[i] = np.arccos(np.clip(cos_angle, -1, 1))
    return angles


def circle_positions(loop_points: np.ndarray, radius: float = 1.0) -> np.ndarray:
    """
    按弦长参数把一条闭合边界映射到圆周上

    Args:
        loop_points: 边界环上的顶点坐标 (K, 3)，按环的顺序排列
        radius: 圆半径

    Returns:
        圆周上的2D坐标 (K, 2)
    """
    k = len(loop_points)
    if k == 0:
        return np.zeros((0, 2))

    closed = np.vstack([loop_points, loop_points[:1]])
    seg_lengths = np.linalg.norm(np.diff(closed, axis=0), axis=1)
    total = seg_lengths.sum()

    if total < 1e-10:
        # 退化边界，退回等角分布
        t = np.arange(k) / k
    else:
        t = np.concatenate([[0.0], np.cumsum(seg_lengths)[:-1]]) / total

    theta = 2.0 * np.pi * t
    return np.column_stack([radius * np.cos(theta), radius * np.sin(theta)])
