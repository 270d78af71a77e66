"""
OptimizationService 单元测试
"""

import asyncio

import pytest

from indicator_backtest.errors import OptimizationCancelled
from indicator_backtest.services.optimization_service import CANCELLED_ERROR, OptimizationService


def test_batch_isolates_failures(market_series):
    """测试单个币种失败不影响其他币种"""
    service = OptimizationService(max_concurrency=2, optimizer_workers=2)
    progress = []

    outcomes = asyncio.run(service.optimize_batch(
        {'BTC-USD': market_series, 'ETH-USD': market_series[:20], 'SOL-USD': market_series},
        progress_callback=progress.append,
    ))

    assert [o.symbol for o in outcomes] == ['BTC-USD', 'ETH-USD', 'SOL-USD']
    assert [o.success for o in outcomes] == [True, False, True]
    assert outcomes[1].result is None
    assert outcomes[1].error
    assert outcomes[0].result.best_combo_label == outcomes[2].result.best_combo_label

    assert len(progress) == 3
    assert progress[-1]['completed'] == 3
    assert progress[-1]['progress'] == 1.0
    assert service.active_optimizers == {}


def test_cancel_skips_waiting_symbols(market_series):
    """测试取消后排队中的币种不再运行"""
    service = OptimizationService(max_concurrency=1, optimizer_workers=1)

    def cancel_after_first(progress):
        service.cancel()

    outcomes = asyncio.run(service.optimize_batch(
        {'A': market_series, 'B': market_series, 'C': market_series},
        progress_callback=cancel_after_first,
    ))

    assert [(o.symbol, o.success, o.error) for o in outcomes] == [
        ('A', True, None),
        ('B', False, CANCELLED_ERROR),
        ('C', False, CANCELLED_ERROR),
    ]
    assert outcomes[1].result is None


def test_cancel_single_symbol(market_series):
    """测试只取消指定币种"""
    service = OptimizationService(max_concurrency=1, optimizer_workers=1)

    def cancel_c(progress):
        service.cancel('C')

    outcomes = asyncio.run(service.optimize_batch(
        {'A': market_series, 'B': market_series, 'C': market_series},
        progress_callback=cancel_c,
    ))

    assert [o.success for o in outcomes] == [True, True, False]
    assert outcomes[2].error == CANCELLED_ERROR


def test_cancel_before_registration_is_kept(market_series):
    """测试优化器注册前到达的取消请求"""
    service = OptimizationService(optimizer_workers=1)
    service.cancel('BTC-USD')

    with pytest.raises(OptimizationCancelled):
        service._optimize_sync('BTC-USD', market_series, None)
    assert service.active_optimizers == {}


def test_single_symbol(market_series):
    """测试单个币种优化"""
    service = OptimizationService(optimizer_workers=2)

    outcome = asyncio.run(service.optimize_symbol('BTC-USD', market_series))

    assert outcome.success
    assert outcome.error is None
    assert len(outcome.result.all_candidate_results) == 5


def test_empty_batch():
    """测试空批量"""
    assert asyncio.run(OptimizationService().optimize_batch({})) == []
