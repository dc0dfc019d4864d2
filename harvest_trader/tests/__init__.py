"""
Harvest Trader Test Suite

Test Files:
- conftest.py: Shared fixtures (price series, ensembles, commodity config)
- test_costs.py / test_config.py: Cost model and configuration validation
- test_harvest.py: Harvest windows and daily inflow schedule
- test_indicators.py: RSI, ADX and ensemble confidence
- test_baseline.py: Rule-based strategies
- test_prediction.py: Forecast-gated and standalone forecast strategies
- test_lp_mpc.py: LP optimizers and the rolling-horizon MPC strategy
- test_backtest_engine.py: Daily simulation loop and invariants
- test_runners.py: Strategy and multi-commodity runners

Run all tests:
    pytest harvest_trader/tests/ -v
"""
