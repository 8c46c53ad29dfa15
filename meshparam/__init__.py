"""三角网格 Laplace 型参数化引擎"""
from .param_mesh import ParamMesh, Vertex
from .weights import WeightOption, get_weight_function, is_symmetric_weight
from .classifier import ConstrainedVertex, classify, make_constraints
from .system import SparseSystem, SymmetricSparseSystem, SystemAssembler, AssemblyReport
from .linsolve import SolverContext, SolverErrorCode, LinearSolverError
from .dispatcher import SolverDispatcher, SolveResult, SolveStatus, SUPPORTED_STRATEGIES
from .calculator import (
    ParamConfig,
    ParameterizationEngine,
    ParameterizationError,
    compute_scalar_field
)
from .uv_map import HarmonicMapper, FlattenResult
from .mesh_loader import MeshLoader
from .exporter import Exporter

__version__ = "0.1.0"
