"""命令行入口

两种模式：
- 默认（未给出 --pin）：把网格边界固定到单位圆上，计算 UV 展开
- 给出 --pin HANDLE=VALUE：固定指定顶点的标量，计算标量场
--scalar-csv 只在标量场模式下可用。
"""
import argparse
import logging
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

from .calculator import ParamConfig, ParameterizationEngine, ParameterizationError
from .classifier import make_constraints
from .dispatcher import SUPPORTED_STRATEGIES
from .exporter import Exporter
from .logging_config import setup_logging
from .mesh_loader import MeshLoader
from .uv_map import HarmonicMapper
from .weights import WeightOption

logger = logging.getLogger(__name__)


def parse_pin(text: str) -> Tuple[int, float]:
    """解析 HANDLE=VALUE"""
    handle, sep, value = text.partition('=')
    if not sep:
        raise argparse.ArgumentTypeError(f"约束格式应为 HANDLE=VALUE: {text!r}")
    try:
        return int(handle), float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"约束格式应为 HANDLE=VALUE: {text!r}")


def build_argparser() -> argparse.ArgumentParser:
    weight_help = ", ".join(f"{o.value}={o.name}" for o in WeightOption)
    p = argparse.ArgumentParser(
        prog="meshparam",
        description="三角网格的 Laplace 型参数化（标量场或 UV 展开）",
    )
    p.add_argument("mesh", type=Path, help="网格文件 (.stl .obj .ply .off .3mf)")
    p.add_argument("--config", type=Path, default=None, help="JSON 配置文件")
    p.add_argument("--weight", type=int, default=None, help=f"权重方案编码 ({weight_help})")
    p.add_argument(
        "--solver",
        type=str,
        default=None,
        help=f"求解策略 ({', '.join(SUPPORTED_STRATEGIES)})",
    )
    p.add_argument("--workers", type=int, default=None, help="行装配线程数")
    p.add_argument(
        "--pin",
        type=parse_pin,
        action="append",
        default=[],
        metavar="HANDLE=VALUE",
        help="固定顶点的标量值，可重复；给出时计算标量场",
    )
    p.add_argument("--scalar-csv", type=Path, default=None, help="标量场输出 CSV（仅标量场模式，需要 --pin）")
    p.add_argument("--uv-csv", type=Path, default=None, help="UV 输出 CSV")
    p.add_argument("--dxf", type=Path, default=None, help="UV 展开输出 DXF")
    p.add_argument("--obj", type=Path, default=None, help="带 UV 的网格输出")
    p.add_argument("--log-file", type=str, default=None)
    p.add_argument("-v", "--verbose", action="store_true", help="输出调试日志")
    return p


def load_config(args: argparse.Namespace) -> ParamConfig:
    config = ParamConfig.load(args.config) if args.config else ParamConfig()
    if args.weight is not None:
        config.weight_option = args.weight
    if args.solver is not None:
        config.solver_type = args.solver
    if args.workers is not None:
        config.max_workers = args.workers
    return config


def _run_scalar(args: argparse.Namespace, mesh, config: ParamConfig) -> int:
    values: Dict[int, float] = {}
    for handle, value in args.pin:
        if not 0 <= handle < len(mesh):
            logger.error(f"顶点句柄越界: {handle} (顶点数 {len(mesh)})")
            return 2
        values[handle] = value

    engine = ParameterizationEngine(config)
    result = engine.compute(mesh, make_constraints(mesh, values))
    if not result.ok:
        return 1

    if args.scalar_csv and not Exporter.export_scalars_csv(args.scalar_csv, mesh):
        return 1
    return 0


def _run_uv(args: argparse.Namespace, mesh, config: ParamConfig) -> int:
    try:
        flat = HarmonicMapper(mesh, config).compute()
    except ValueError as e:
        logger.error(f"无法展开: {e}")
        return 1
    except ParameterizationError as e:
        logger.error(f"展开失败: {e}")
        return 1

    ok = True
    if args.uv_csv:
        ok &= Exporter.export_uv_csv(args.uv_csv, flat.uv_coords)
    if args.dxf:
        ok &= Exporter.export_uv_dxf(args.dxf, flat.uv_coords, flat.faces, flat.scale)
    if args.obj:
        ok &= Exporter.export_uv_mesh(args.obj, mesh, flat.uv_coords)
    return 0 if ok else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_argparser()
    args = parser.parse_args(argv)

    setup_logging(logging.DEBUG if args.verbose else logging.INFO, args.log_file)

    if args.scalar_csv and not args.pin:
        # UV 模式下网格里只留有最后一个分量，不是有意义的标量场
        logger.error("--scalar-csv 只用于标量场模式，请同时给出 --pin")
        return 2

    try:
        config = load_config(args)
    except (OSError, ValueError, TypeError) as e:
        logger.error(f"读取配置失败: {e}")
        return 2

    tm = MeshLoader.load(args.mesh)
    if tm is None:
        return 2
    mesh = MeshLoader.to_param_mesh(tm)
    logger.info(f"网格信息: {MeshLoader.get_mesh_info(tm)}")

    if args.pin:
        return _run_scalar(args, mesh, config)
    return _run_uv(args, mesh, config)
