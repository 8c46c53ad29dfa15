"""稀疏线性求解器封装（基于 scipy.sparse.linalg）

提供四条分解/求解路径，失败时统一抛出带错误码的 LinearSolverError：
- linsolve:            一次完成 LU 分解与求解
- lu_symbolic/numeric: 符号分解（排序 + 结构秩检查）与数值 LU 分解分离
- llt_symbolic/numeric: 对称正定矩阵的无主元 LDL^T（Cholesky 类）分解
- iterative_solve:     GMRES 迭代求解（Jacobi 预条件），求解前检查奇异连通块

分解结果以句柄形式返回，句柄必须调用 free() 或用 with 语句释放；
SolverContext.open_handles 记录尚未释放的句柄数。
"""
import logging
import numpy as np
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional, Tuple

from scipy.sparse import csc_matrix, diags, issparse
from scipy.sparse.csgraph import connected_components, reverse_cuthill_mckee, structural_rank
from scipy.sparse.linalg import gmres, splu

logger = logging.getLogger(__name__)


class SolverErrorCode(IntEnum):
    """求解库错误码"""
    SUCCESS = 0
    ERROR = -1
    NOMEM = -2
    BADARGS = -3
    INDEFINITE = -4
    MAXDEPTH = -5
    SINGULAR = -6


class LinearSolverError(Exception):
    """求解库错误"""

    def __init__(self, code: SolverErrorCode, message: str):
        super().__init__(message)
        self.code = SolverErrorCode(code)
        self.message = message


@dataclass
class SolverContext:
    """求解器上下文（代替求解库的全局状态，显式传递）"""
    ordering: str = "COLAMD"  # 一次求解路径的列排序
    pivot_tolerance: float = 1e-12  # 相对主元阈值，低于此值视为奇异
    iterative_tol: float = 1e-10
    iterative_maxiter: Optional[int] = None  # 重启次数上限
    iterative_restart: int = 20  # 每次重启前的内迭代数
    open_handles: int = field(default=0, init=False)


def error_code_for(exc: BaseException) -> SolverErrorCode:
    """把求解库抛出的异常映射为错误码"""
    if isinstance(exc, LinearSolverError):
        return exc.code
    if isinstance(exc, MemoryError):
        return SolverErrorCode.NOMEM
    if isinstance(exc, RecursionError):
        return SolverErrorCode.MAXDEPTH
    if isinstance(exc, RuntimeError) and "singular" in str(exc).lower():
        return SolverErrorCode.SINGULAR
    if isinstance(exc, (ValueError, TypeError, IndexError)):
        return SolverErrorCode.BADARGS
    return SolverErrorCode.ERROR


def _call_library(func, *args, **kwargs):
    try:
        return func(*args, **kwargs)
    except (MemoryError, RuntimeError, ValueError, TypeError, IndexError) as exc:
        name = getattr(func, '__name__', repr(func))
        raise LinearSolverError(error_code_for(exc), f"{name}: {exc}") from exc


def _as_square_csc(A, name: str = "A") -> csc_matrix:
    if not issparse(A):
        raise LinearSolverError(SolverErrorCode.BADARGS, f"{name} 不是稀疏矩阵")
    if A.shape[0] != A.shape[1] or A.shape[0] == 0:
        raise LinearSolverError(SolverErrorCode.BADARGS, f"{name} 须为非空方阵, 实际 shape: {A.shape}")
    A = csc_matrix(A, dtype=np.float64)
    if not np.all(np.isfinite(A.data)):
        raise LinearSolverError(SolverErrorCode.BADARGS, f"{name} 包含非有限值")
    return A


def _check_rhs(b, n: int) -> np.ndarray:
    b = np.asarray(b, dtype=np.float64)
    if b.ndim != 1 or b.shape[0] != n:
        raise LinearSolverError(SolverErrorCode.BADARGS, f"右端向量长度须为 {n}, 实际 shape: {b.shape}")
    if not np.all(np.isfinite(b)):
        raise LinearSolverError(SolverErrorCode.BADARGS, "右端向量包含非有限值")
    return b


def _check_pivots(lu, tolerance: float, code: SolverErrorCode, positive: bool = False) -> None:
    """检查 U 的对角元（主元）"""
    d = lu.U.diagonal()
    scale = float(np.max(np.abs(d))) if d.size else 0.0
    if positive:
        bad = np.flatnonzero(d <= tolerance * scale)
    else:
        bad = np.flatnonzero(np.abs(d) <= tolerance * scale)

    if scale == 0.0 or bad.size:
        k = int(bad[0]) if bad.size else 0
        raise LinearSolverError(code, f"第 {k} 个主元为 {d[k]:.3e} (最大主元 {scale:.3e})")


def _check_structural_rank(A: csc_matrix) -> None:
    rank = int(_call_library(structural_rank, A))
    if rank < A.shape[0]:
        raise LinearSolverError(
            SolverErrorCode.SINGULAR,
            f"矩阵结构奇异: 结构秩 {rank} < {A.shape[0]}"
        )


def _permute(A: csc_matrix, perm: np.ndarray) -> csc_matrix:
    return A[perm, :][:, perm].tocsc()


class FactorHandle:
    """分解句柄，释放后不可再使用"""
    kind = "factor"

    def __init__(self, context: SolverContext):
        self._context = context
        self._freed = False
        context.open_handles += 1

    @property
    def is_freed(self) -> bool:
        return self._freed

    def free(self) -> None:
        if self._freed:
            return
        self._release()
        self._freed = True
        self._context.open_handles -= 1
        logger.debug(f"释放{self.kind}句柄")

    def _release(self) -> None:
        pass

    def _ensure_alive(self) -> None:
        if self._freed:
            raise RuntimeError(f"{self.kind}句柄已释放")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.free()
        return False


class SymbolicFactor(FactorHandle):
    """符号分解：填充缩减排序与矩阵结构"""
    kind = "符号分解"

    def __init__(self, context: SolverContext, perm: np.ndarray, shape: Tuple[int, int], symmetric: bool):
        super().__init__(context)
        self.perm = perm
        self.shape = shape
        self.symmetric = symmetric

    def _release(self) -> None:
        self.perm = None


class NumericFactor(FactorHandle):
    """数值分解，perm 为符号分解给出的对称排序（None 表示由求解库自行排序）"""
    kind = "数值分解"

    def __init__(self, context: SolverContext, lu, perm: Optional[np.ndarray]):
        super().__init__(context)
        self._lu = lu
        self._perm = perm

    def solve(self, b: np.ndarray) -> np.ndarray:
        """三角回代求解"""
        self._ensure_alive()
        b = _check_rhs(b, self._lu.shape[0])

        if self._perm is None:
            x = _call_library(self._lu.solve, b)
        else:
            # (P A P^T)(P x) = P b
            y = _call_library(self._lu.solve, b[self._perm])
            x = np.empty_like(y)
            x[self._perm] = y

        if not np.all(np.isfinite(x)):
            raise LinearSolverError(SolverErrorCode.ERROR, "解向量包含非有限值")
        return x

    def _release(self) -> None:
        self._lu = None
        self._perm = None


def linsolve(A, b: np.ndarray, context: SolverContext) -> np.ndarray:
    """一次完成 LU 符号分解、数值分解与求解"""
    A = _as_square_csc(A)
    b = _check_rhs(b, A.shape[0])

    lu = _call_library(splu, A, permc_spec=context.ordering)
    with NumericFactor(context, lu, None) as factor:
        _check_pivots(lu, context.pivot_tolerance, SolverErrorCode.SINGULAR)
        return factor.solve(b)


def lu_symbolic(A, context: SolverContext) -> SymbolicFactor:
    """LU 符号分解：结构秩检查 + 反向 Cuthill-McKee 排序"""
    A = _as_square_csc(A)
    _check_structural_rank(A)
    perm = _call_library(reverse_cuthill_mckee, A.tocsr(), symmetric_mode=False)
    return SymbolicFactor(context, np.asarray(perm, dtype=np.int64), A.shape, symmetric=False)


def lu_numeric(MA, symbolic: SymbolicFactor, context: SolverContext) -> NumericFactor:
    """在符号分解的排序上做数值 LU 分解（部分主元）"""
    symbolic._ensure_alive()
    MA = _as_square_csc(MA, "MA")
    if MA.shape != symbolic.shape:
        raise LinearSolverError(
            SolverErrorCode.BADARGS,
            f"数值分解矩阵 shape {MA.shape} 与符号分解 {symbolic.shape} 不一致"
        )

    lu = _call_library(splu, _permute(MA, symbolic.perm), permc_spec="NATURAL")
    _check_pivots(lu, context.pivot_tolerance, SolverErrorCode.SINGULAR)
    return NumericFactor(context, lu, symbolic.perm)


def llt_symbolic(SA, context: SolverContext) -> SymbolicFactor:
    """对称矩阵的符号分解"""
    SA = _as_square_csc(SA, "SA")
    asym = abs(SA - SA.T)
    scale = max(float(abs(SA).max()), 1.0)
    if asym.nnz and float(asym.max()) > 1e-12 * scale:
        raise LinearSolverError(SolverErrorCode.BADARGS, "对称分解的输入矩阵不对称")

    _check_structural_rank(SA)
    perm = _call_library(reverse_cuthill_mckee, SA.tocsr(), symmetric_mode=True)
    return SymbolicFactor(context, np.asarray(perm, dtype=np.int64), SA.shape, symmetric=True)


def llt_numeric(SMA, symbolic: SymbolicFactor, context: SolverContext) -> NumericFactor:
    """
    对称正定矩阵的数值分解

    使用不选主元的 LDL^T 消元（SuperLU 对称模式，对角主元阈值为 0），
    所有主元为正当且仅当矩阵正定；否则抛出 INDEFINITE。
    """
    symbolic._ensure_alive()
    SMA = _as_square_csc(SMA, "SMA")
    if SMA.shape != symbolic.shape:
        raise LinearSolverError(
            SolverErrorCode.BADARGS,
            f"数值分解矩阵 shape {SMA.shape} 与符号分解 {symbolic.shape} 不一致"
        )

    try:
        lu = _call_library(
            splu,
            _permute(SMA, symbolic.perm),
            permc_spec="NATURAL",
            diag_pivot_thresh=0.0,
            options={"SymmetricMode": True}
        )
    except LinearSolverError as err:
        if err.code == SolverErrorCode.SINGULAR:
            raise LinearSolverError(SolverErrorCode.INDEFINITE, f"矩阵非正定: {err.message}") from err
        raise

    if not np.array_equal(lu.perm_r, lu.perm_c):
        raise LinearSolverError(SolverErrorCode.INDEFINITE, "矩阵非正定: 消元过程需要非对角主元")
    _check_pivots(lu, context.pivot_tolerance, SolverErrorCode.INDEFINITE, positive=True)
    return NumericFactor(context, lu, symbolic.perm)


def _check_zero_row_sum_components(A, tolerance: float) -> None:
    """
    检查零行和的连通块

    Laplace 行的行和为 0，约束行是单位行。若某个连通块内没有约束行，
    常向量就落在该块的零空间里，矩阵奇异。迭代法不会报告这种情况，只会收敛到某个解。
    """
    n_blocks, labels = _call_library(connected_components, A, directed=True, connection='weak')
    row_sums = np.abs(np.asarray(A.sum(axis=1)).reshape(-1))
    row_scale = abs(A).max(axis=1).toarray().reshape(-1)

    for k in range(n_blocks):
        rows = np.flatnonzero(labels == k)
        scale = float(np.max(row_scale[rows]))
        if scale == 0.0 or float(np.max(row_sums[rows])) <= tolerance * scale:
            raise LinearSolverError(
                SolverErrorCode.SINGULAR,
                f"矩阵奇异: 含 {rows.size} 个未知量的连通块没有约束行 (首行 {int(rows[0])})"
            )


def iterative_solve(A, b: np.ndarray, context: SolverContext) -> np.ndarray:
    """GMRES 迭代求解（Jacobi 预条件），只报告成功/失败"""
    A = _as_square_csc(A).tocsr()
    b = _check_rhs(b, A.shape[0])
    _check_zero_row_sum_components(A, 1e-10)

    d = A.diagonal()
    M = diags(1.0 / d) if np.all(np.abs(d) > 0) else None

    x, info = _call_library(
        gmres, A, b,
        rtol=context.iterative_tol,
        atol=0.0,
        restart=context.iterative_restart,
        maxiter=context.iterative_maxiter,
        M=M
    )
    if info != 0:
        raise LinearSolverError(SolverErrorCode.ERROR, f"GMRES 未收敛 (info={info})")
    if not np.all(np.isfinite(x)):
        raise LinearSolverError(SolverErrorCode.ERROR, "解向量包含非有限值")
    return np.asarray(x, dtype=np.float64)
