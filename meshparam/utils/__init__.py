"""工具模块"""
from .geometry import (
    edge_length,
    corner_angle,
    cotangent,
    triangle_area,
    triangle_angles,
    circle_positions
)
