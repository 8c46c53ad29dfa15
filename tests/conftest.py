"""测试用网格"""
import numpy as np
import pytest

from meshparam.param_mesh import ParamMesh


def make_grid(nx: int = 5, ny: int = 5, size: float = 1.0):
    """规则平面网格，每个方格切成 (a, b, c) 和 (a, c, d) 两个逆时针三角形"""
    xs = np.linspace(0.0, size, nx)
    ys = np.linspace(0.0, size, ny)
    vertices = np.array([[x, y, 0.0] for y in ys for x in xs], dtype=np.float64)

    faces = []
    for r in range(ny - 1):
        for c in range(nx - 1):
            a = r * nx + c
            b = a + 1
            d = a + nx
            cc = d + 1
            faces.append([a, b, cc])
            faces.append([a, cc, d])
    return vertices, np.array(faces, dtype=np.int64)


def make_octahedron():
    vertices = np.array(
        [
            [1.0, 0.0, 0.0],
            [-1.0, 0.0, 0.0],
            [0.0, 1.0, 0.0],
            [0.0, -1.0, 0.0],
            [0.0, 0.0, 1.0],
            [0.0, 0.0, -1.0],
        ],
        dtype=np.float64,
    )
    # 外法向一致
    faces = np.array(
        [
            [0, 2, 4],
            [2, 1, 4],
            [1, 3, 4],
            [3, 0, 4],
            [2, 0, 5],
            [1, 2, 5],
            [3, 1, 5],
            [0, 3, 5],
        ],
        dtype=np.int64,
    )
    return vertices, faces


def make_hexagon_fan():
    """中心顶点 0 加六个单位圆上的顶点，六个等边三角形"""
    angles = np.arange(6) * np.pi / 3.0
    ring = np.column_stack([np.cos(angles), np.sin(angles), np.zeros(6)])
    vertices = np.vstack([[0.0, 0.0, 0.0], ring])
    faces = np.array([[0, k, k % 6 + 1] for k in range(1, 7)], dtype=np.int64)
    return vertices, faces


@pytest.fixture
def triangle_mesh():
    vertices = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
    return ParamMesh.from_faces(vertices, np.array([[0, 1, 2]]))


@pytest.fixture
def grid_factory():
    def factory(nx: int = 5, ny: int = 5, size: float = 1.0) -> ParamMesh:
        return ParamMesh.from_faces(*make_grid(nx, ny, size))
    return factory


@pytest.fixture
def grid_mesh(grid_factory):
    return grid_factory(5, 5)


@pytest.fixture
def grid_arrays():
    return make_grid(3, 3)


@pytest.fixture
def octahedron_mesh():
    return ParamMesh.from_faces(*make_octahedron())


@pytest.fixture
def hexagon_mesh():
    return ParamMesh.from_faces(*make_hexagon_fan())


@pytest.fixture
def path_mesh():
    """三个顶点的链 0-1-2（没有三角面），顶点 2 只有一个邻居"""
    points = np.array([[0.0, 0.0], [1.0, 0.0], [2.0, 0.0]])
    return ParamMesh(points, [[1], [0, 2], [1]])


def boundary_handles(mesh: ParamMesh):
    return [v.handle for v in mesh.vertices() if mesh.is_boundary(v)]


@pytest.fixture
def linear_boundary_values():
    """边界顶点取线性函数 f(x, y) = 2x - y + 0.5 的值"""
    def f(point):
        return 2.0 * point[0] - point[1] + 0.5

    def build(mesh: ParamMesh):
        return {h: f(mesh.vertex(h).point) for h in boundary_handles(mesh)}, f
    return build
