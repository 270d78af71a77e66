"""
命令行工具 - 对合并后的指标快照 CSV 执行回测 / 权重优化 / 单指标对比
"""
import argparse
import json
import sys
from typing import Dict, List, Optional

from indicator_backtest.config import settings
from indicator_backtest.config.validator import load_config
from indicator_backtest.data_provider import load_csv
from indicator_backtest.errors import BacktestError
from indicator_backtest.logger_utils import get_logger
from indicator_backtest.optimization.candidates import BASE_WEIGHTS, curated_candidates, grid_candidates
from indicator_backtest.optimization.grid_search import WeightOptimizer
from indicator_backtest.services.backtest_service import BacktestService

logger = get_logger("cli")


def parse_weights(text: Optional[str]) -> Dict[str, float]:
    """解析权重: JSON 对象或 'SMA=1.5,EMA=1' 形式；为空时使用基础权重"""
    if not text:
        return {k.value: v for k, v in BASE_WEIGHTS.items()}
    text = text.strip()
    if text.startswith('{'):
        return {k: float(v) for k, v in json.loads(text).items()}

    weights = {}
    for part in text.split(','):
        name, sep, value = part.partition('=')
        if not sep:
            raise ValueError(f"权重格式错误: {part}（应为 名称=数值）")
        weights[name.strip()] = float(value)
    return weights


def parse_levels(text: str) -> List[float]:
    return [float(v) for v in text.split(',') if v.strip()]


def _load_options(path: Optional[str]) -> dict:
    if not path:
        return {}
    with open(path, encoding='utf-8') as f:
        return json.load(f)


def _print_json(payload):
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def cmd_backtest(args):
    """按给定权重回测"""
    config = load_config(_load_options(args.config))
    service = BacktestService(config)
    data = load_csv(args.csv)
    weights = parse_weights(args.weights)

    if args.train_test:
        report = service.evaluate_train_test(data, weights, split=args.split)
        _print_json(report.to_dict())
        return

    result = service.run(data, weights)
    _print_json(result.to_dict(include_details=True) if args.details else result.summary())


def cmd_optimize(args):
    """权重优化"""
    config = load_config(_load_options(args.config))
    data = load_csv(args.csv)

    if args.grid:
        candidates = grid_candidates(parse_levels(args.levels))
    else:
        candidates = curated_candidates()

    def on_progress(progress):
        logger.info(
            f"[{progress['completed']}/{progress['total']}] {progress['label']}: ROI {progress['roi']:.2f}%"
        )

    optimizer = WeightOptimizer(
        config,
        max_workers=args.workers,
        use_processes=args.processes,
        normalize_to=args.normalize_to,
    )
    result = optimizer.optimize(data, candidates, progress_callback=on_progress)
    _print_json(result.to_dict())


def cmd_indicators(args):
    """单指标对比"""
    config = load_config(_load_options(args.config))
    data = load_csv(args.csv)
    _print_json(BacktestService(config).backtest_all_indicators(data))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="指标加权回测命令行工具")
    subparsers = parser.add_subparsers(dest='command', help='可用命令')

    # backtest
    p_backtest = subparsers.add_parser('backtest', help='按权重运行回测')
    p_backtest.add_argument('csv', help='指标快照 CSV 文件')
    p_backtest.add_argument('--weights', type=str, help="权重，如 'SMA=1.5,EMA=1' 或 JSON")
    p_backtest.add_argument('--config', type=str, help='回测参数 JSON 文件 (camelCase)')
    p_backtest.add_argument('--train-test', action='store_true', help='训练/测试集过拟合检查')
    p_backtest.add_argument('--split', type=float, default=settings.TRAIN_TEST_SPLIT, help='训练集比例')
    p_backtest.add_argument('--details', action='store_true', help='输出交易明细和权益曲线')

    # optimize
    p_optimize = subparsers.add_parser('optimize', help='搜索最优指标权重')
    p_optimize.add_argument('csv', help='指标快照 CSV 文件')
    p_optimize.add_argument('--config', type=str, help='回测参数 JSON 文件 (camelCase)')
    p_optimize.add_argument('--grid', action='store_true', help='使用网格候选（默认使用类别组合）')
    p_optimize.add_argument('--levels', type=str, default='0,1,2', help='网格权重档位（逗号分隔）')
    p_optimize.add_argument('--workers', type=int, help='并发数')
    p_optimize.add_argument('--processes', action='store_true', help='使用进程池')
    p_optimize.add_argument('--normalize-to', type=float, default=settings.DEFAULT_NORMALIZE_TO,
                            help='最优权重归一化总和')

    # indicators
    p_indicators = subparsers.add_parser('indicators', help='逐个指标回测对比')
    p_indicators.add_argument('csv', help='指标快照 CSV 文件')
    p_indicators.add_argument('--config', type=str, help='回测参数 JSON 文件 (camelCase)')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    commands = {
        'backtest': cmd_backtest,
        'optimize': cmd_optimize,
        'indicators': cmd_indicators,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    try:
        handler(args)
    except (BacktestError, ValueError, OSError) as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
