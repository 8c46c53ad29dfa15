"""边权重方案

每种方案都是一个纯函数 weight(mesh, vi, vj) -> float，对每条有向边 i->j 调用一次。
方案通过整数编码选择，未识别的编码退回 Tutte（均匀权重）。

  0  MVC     均值坐标（基于角度，一般不对称）
  1  DCP     离散共形参数化（余切权重，对称）
  2  Tutte   均匀权重 w = 1
  3  Spring1 弹簧权重 w = 1 / |xi - xj|
  4  Spring2 弹簧权重 w = 1 / |xi - xj|^2
"""
import logging
import numpy as np
from enum import IntEnum
from typing import Callable, Dict

from .param_mesh import ParamMesh, Vertex
from .utils.geometry import corner_angle, cotangent, edge_length

logger = logging.getLogger(__name__)

WeightFunction = Callable[[ParamMesh, Vertex, Vertex], float]


class WeightOption(IntEnum):
    """权重方案编码"""
    MVC = 0
    DCP = 1
    TUTTE = 2
    SPRING1 = 3
    SPRING2 = 4


def mvc_weight(mesh: ParamMesh, vi: Vertex, vj: Vertex) -> float:
    """均值坐标权重: (tan(a1/2) + tan(a2/2)) / |xj - xi|"""
    prev_v, next_v = mesh.edge_wing(vi, vj)
    xi, xj = vi.point, vj.point

    tan_sum = 0.0
    if prev_v is not None:
        tan_sum += np.tan(0.5 * corner_angle(xi, prev_v.point, xj))
    if next_v is not None:
        tan_sum += np.tan(0.5 * corner_angle(xi, xj, next_v.point))

    return float(tan_sum / (edge_length(xi, xj) + 1e-10))


def dcp_weight(mesh: ParamMesh, vi: Vertex, vj: Vertex) -> float:
    """离散共形权重: cot(边 ij 的两个对角) 之和"""
    prev_v, next_v = mesh.edge_wing(vi, vj)
    xi, xj = vi.point, vj.point

    w = 0.0
    if prev_v is not None:
        w += cotangent(prev_v.point, xi, xj)
    if next_v is not None:
        w += cotangent(next_v.point, xi, xj)
    return float(w)


def tutte_weight(mesh: ParamMesh, vi: Vertex, vj: Vertex) -> float:
    """均匀权重"""
    return 1.0


def spring1_weight(mesh: ParamMesh, vi: Vertex, vj: Vertex) -> float:
    """弹簧权重（边长倒数）"""
    return 1.0 / (edge_length(vi.point, vj.point) + 1e-10)


def spring2_weight(mesh: ParamMesh, vi: Vertex, vj: Vertex) -> float:
    """弹簧权重（边长平方倒数）"""
    length = edge_length(vi.point, vj.point)
    return 1.0 / (length * length + 1e-10)


WEIGHT_FUNCTIONS: Dict[WeightOption, WeightFunction] = {
    WeightOption.MVC: mvc_weight,
    WeightOption.DCP: dcp_weight,
    WeightOption.TUTTE: tutte_weight,
    WeightOption.SPRING1: spring1_weight,
    WeightOption.SPRING2: spring2_weight,
}

# 满足 w(i, j) == w(j, i) 的方案，可用于对称形式的方程组
SYMMETRIC_OPTIONS = {
    WeightOption.DCP,
    WeightOption.TUTTE,
    WeightOption.SPRING1,
    WeightOption.SPRING2,
}


def resolve_weight_option(option: int) -> WeightOption:
    """把整数编码解析为权重方案，未识别时退回 Tutte"""
    try:
        return WeightOption(int(option))
    except (TypeError, ValueError):
        logger.debug(f"未识别的权重编码 {option}，使用 Tutte 均匀权重")
        return WeightOption.TUTTE


def get_weight_function(option: int) -> WeightFunction:
    return WEIGHT_FUNCTIONS[resolve_weight_option(option)]


def is_symmetric_weight(option: int) -> bool:
    return resolve_weight_option(option) in SYMMETRIC_OPTIONS
