"""
Runners Module

- StrategyRunner: Execute all 10 strategies (4 baseline + 6 prediction) on one dataset
- MultiCommodityRunner: Parallel execution across commodity-model combinations

**Usage:**
```python
from harvest_trader.runners import MultiCommodityRunner

runner = MultiCommodityRunner(executor='process')
results = runner.run_all({('coffee', 'arima_v1'): (prices, prediction_matrices)})
summary = runner.summary_frame()
```
"""

from .multi_commodity_runner import MultiCommodityRunner, run_commodity_model
from .strategy_runner import StrategyRunner

__all__ = [
    'StrategyRunner',
    'MultiCommodityRunner',
    'run_commodity_model'
]
