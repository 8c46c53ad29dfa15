"""求解策略分派

根据策略名调用对应的分解/求解流程，把求解库的错误码翻译为统一的 SolveResult。
策略名区分大小写：

  general-direct      一般形式，一次完成 LU 分解与求解
  general-two-phase   一般形式，符号分解 -> 数值分解 -> 三角回代
  iterative           一般形式，迭代求解
  out-of-core         同 iterative
  symmetric-direct    对称形式，Cholesky 类分解
"""
import logging
import time
import numpy as np
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from . import linsolve
from .linsolve import LinearSolverError, SolverContext, SolverErrorCode
from .system import SparseSystem, SymmetricSparseSystem

logger = logging.getLogger(__name__)

GENERAL_DIRECT = "general-direct"
GENERAL_TWO_PHASE = "general-two-phase"
ITERATIVE = "iterative"
OUT_OF_CORE = "out-of-core"
SYMMETRIC_DIRECT = "symmetric-direct"

SUPPORTED_STRATEGIES = (
    GENERAL_DIRECT,
    GENERAL_TWO_PHASE,
    ITERATIVE,
    OUT_OF_CORE,
    SYMMETRIC_DIRECT,
)


class SolveStatus(IntEnum):
    """计算状态，0 为成功，负值为失败"""
    SUCCESS = 0
    DEGENERATE_TOPOLOGY = -1
    UNSUPPORTED_STRATEGY = -2
    SYMBOLIC_FACTORIZATION_FAILED = -3
    NUMERIC_FACTORIZATION_FAILED = -4
    SOLVE_FAILED = -5
    OUT_OF_MEMORY = -6
    BAD_ARGUMENTS = -7
    MAX_DEPTH_EXCEEDED = -8
    NOT_POSITIVE_DEFINITE = -9
    SINGULAR = -10
    INVALID_INPUT = -11


# general-direct 需要区分求解库的具体失败类型
_DIRECT_STATUS = {
    SolverErrorCode.NOMEM: SolveStatus.OUT_OF_MEMORY,
    SolverErrorCode.BADARGS: SolveStatus.BAD_ARGUMENTS,
    SolverErrorCode.MAXDEPTH: SolveStatus.MAX_DEPTH_EXCEEDED,
    SolverErrorCode.INDEFINITE: SolveStatus.NOT_POSITIVE_DEFINITE,
    SolverErrorCode.SINGULAR: SolveStatus.SINGULAR,
    SolverErrorCode.ERROR: SolveStatus.SOLVE_FAILED,
}


@dataclass
class SolveResult:
    """求解结果"""
    status: SolveStatus
    message: str = ""
    solution: Optional[np.ndarray] = None  # 长度 n，仅成功时有值
    error_code: SolverErrorCode = SolverErrorCode.SUCCESS
    strategy: str = ""

    @property
    def ok(self) -> bool:
        return self.status == SolveStatus.SUCCESS


def uses_symmetric_form(strategy: str) -> bool:
    return strategy == SYMMETRIC_DIRECT


class SolverDispatcher:
    """求解分派器"""

    def __init__(self, context: Optional[SolverContext] = None):
        self.context = context if context is not None else SolverContext()

    def solve(
        self,
        general: SparseSystem,
        symmetric: Optional[SymmetricSparseSystem],
        strategy: str
    ) -> SolveResult:
        """
        按策略求解

        Args:
            general: 一般形式方程组
            symmetric: 对称形式方程组（仅 symmetric-direct 使用）
            strategy: 策略名

        Returns:
            SolveResult
        """
        if strategy == GENERAL_DIRECT:
            result = self._general_direct(general)
        elif strategy == GENERAL_TWO_PHASE:
            result = self._lu_symbolic_factor_solve(general)
        elif strategy in (ITERATIVE, OUT_OF_CORE):
            result = self._iterative_solve(general, strategy)
        elif strategy == SYMMETRIC_DIRECT:
            if symmetric is None:
                result = SolveResult(SolveStatus.BAD_ARGUMENTS, "symmetric-direct 需要对称形式方程组")
            else:
                result = self._ll_symbolic_factor_solve(symmetric)
        else:
            result = SolveResult(
                SolveStatus.UNSUPPORTED_STRATEGY,
                f"不支持的求解策略: {strategy!r}, 可选: {', '.join(SUPPORTED_STRATEGIES)}"
            )

        result.strategy = strategy
        if result.ok:
            logger.info(f"[{strategy}] 求解成功")
        else:
            logger.error(f"[{strategy}] 求解失败 ({result.status.name}): {result.message}")

        if self.context.open_handles:
            logger.warning(f"[{strategy}] 仍有 {self.context.open_handles} 个分解句柄未释放")
        return result

    @staticmethod
    def _failure(status: SolveStatus, err: LinearSolverError, phase: str) -> SolveResult:
        return SolveResult(status, f"{phase}: {err.message}", error_code=err.code)

    def _general_direct(self, system: SparseSystem) -> SolveResult:
        logger.debug("#### 开始 general-direct")
        start = time.perf_counter()
        try:
            x = linsolve.linsolve(system.matrix(), system.B, self.context)
        except LinearSolverError as err:
            return self._failure(_DIRECT_STATUS.get(err.code, SolveStatus.SOLVE_FAILED), err, "LU求解")

        logger.debug(f"  LU分解与求解: {time.perf_counter() - start:.4f} 秒")
        return SolveResult(SolveStatus.SUCCESS, solution=x)

    def _lu_symbolic_factor_solve(self, system: SparseSystem) -> SolveResult:
        logger.debug("#### 开始 general-two-phase")
        A = system.matrix()
        # 数值分解与符号分解使用同一矩阵
        MA = A

        start = time.perf_counter()
        try:
            LS = linsolve.lu_symbolic(A, self.context)
        except LinearSolverError as err:
            return self._failure(SolveStatus.SYMBOLIC_FACTORIZATION_FAILED, err, "符号分解")

        with LS:
            logger.debug(f"  符号分解: {time.perf_counter() - start:.4f} 秒")
            start = time.perf_counter()
            try:
                LV = linsolve.lu_numeric(MA, LS, self.context)
            except LinearSolverError as err:
                return self._failure(SolveStatus.NUMERIC_FACTORIZATION_FAILED, err, "数值分解")

            with LV:
                logger.debug(f"  数值分解: {time.perf_counter() - start:.4f} 秒")
                start = time.perf_counter()
                try:
                    x = LV.solve(system.B)
                except LinearSolverError as err:
                    return self._failure(SolveStatus.SOLVE_FAILED, err, "三角回代")
                logger.debug(f"  三角回代: {time.perf_counter() - start:.4f} 秒")

        return SolveResult(SolveStatus.SUCCESS, solution=x)

    def _iterative_solve(self, system: SparseSystem, strategy: str) -> SolveResult:
        logger.debug(f"#### 开始 {strategy}")
        start = time.perf_counter()
        try:
            x = linsolve.iterative_solve(system.matrix(), system.B, self.context)
        except LinearSolverError as err:
            # 迭代求解只报告成功/失败
            return self._failure(SolveStatus.SOLVE_FAILED, err, "迭代求解")

        logger.debug(f"  迭代求解: {time.perf_counter() - start:.4f} 秒")
        return SolveResult(SolveStatus.SUCCESS, solution=x)

    def _ll_symbolic_factor_solve(self, system: SymmetricSparseSystem) -> SolveResult:
        logger.debug("#### 开始 symmetric-direct")
        SA = system.matrix()
        SMA = SA

        start = time.perf_counter()
        try:
            L = linsolve.llt_symbolic(SA, self.context)
        except LinearSolverError as err:
            return self._failure(SolveStatus.SYMBOLIC_FACTORIZATION_FAILED, err, "对称符号分解")

        with L:
            logger.debug(f"  对称符号分解: {time.perf_counter() - start:.4f} 秒")
            start = time.perf_counter()
            try:
                LV = linsolve.llt_numeric(SMA, L, self.context)
            except LinearSolverError as err:
                return self._failure(SolveStatus.NUMERIC_FACTORIZATION_FAILED, err, "对称数值分解")

            with LV:
                logger.debug(f"  对称数值分解: {time.perf_counter() - start:.4f} 秒")
                start = time.perf_counter()
                try:
                    x = LV.solve(system.B)
                except LinearSolverError as err:
                    return self._failure(SolveStatus.SOLVE_FAILED, err, "对称回代")
                logger.debug(f"  对称回代: {time.perf_counter() - start:.4f} 秒")

        return SolveResult(SolveStatus.SUCCESS, solution=x)
