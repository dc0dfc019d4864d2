"""
Unit Tests for Configuration
Default tables, CommodityConfig validation and parameter overrides
"""

import json

import pytest

from harvest_trader.config import (
    COMMODITY_CONFIGS,
    PREDICTION_PARAMS,
    CommodityConfig,
    get_commodity_config,
    get_prediction_params,
    load_params_json,
    thaw
)
from harvest_trader.core.harvest import HarvestWindow
from harvest_trader.exceptions import ConfigurationError


class TestDefaultTables:

    def test_defaults_are_read_only(self):
        with pytest.raises(TypeError):
            COMMODITY_CONFIGS['coffee']['harvest_volume'] = 100

    def test_get_commodity_config_returns_private_copy(self):
        config = get_commodity_config('coffee')
        config['harvest_volume'] = 999
        assert COMMODITY_CONFIGS['coffee']['harvest_volume'] == 50
        assert get_commodity_config('coffee')['harvest_volume'] == 50

    def test_unknown_commodity(self):
        with pytest.raises(ConfigurationError, match='Unknown commodity'):
            get_commodity_config('cocoa')

    def test_thaw_restores_lists_and_dicts(self):
        config = thaw(COMMODITY_CONFIGS['coffee'])
        assert isinstance(config, dict)
        assert list(config['harvest_windows']) == [(5, 9)]

    def test_prediction_params_copy(self):
        params = get_prediction_params()
        params['consensus']['evaluation_day'] = 3
        assert PREDICTION_PARAMS['consensus']['evaluation_day'] == 14


class TestCommodityConfig:

    def test_from_dict_coffee(self, coffee_config):
        config = CommodityConfig.from_dict(coffee_config)

        assert config.commodity == 'coffee'
        assert config.harvest_windows == (HarvestWindow(121, 273),)
        assert config.costs.storage_rate == pytest.approx(0.00005)
        assert config.costs.transaction_rate == pytest.approx(0.0001)
        assert config.costs.max_holding_days == 365

    def test_from_dict_passes_through_instances(self, coffee_config):
        config = CommodityConfig.from_dict(coffee_config)
        assert CommodityConfig.from_dict(config) is config

    def test_missing_keys(self):
        with pytest.raises(ConfigurationError, match='missing keys'):
            CommodityConfig.from_dict({'commodity': 'coffee', 'harvest_volume': 50})

    @pytest.mark.parametrize('override', [
        {'harvest_volume': 0},
        {'storage_cost_pct_per_day': -0.005},
        {'transaction_cost_pct': -1.0},
        {'max_holding_days': 0},
        {'min_inventory_to_trade': -1.0},
        {'harvest_windows': [(5, 13)]},
        {'harvest_windows': [(5, 9), (8, 10)]},
        {'harvest_windows': []},
    ])
    def test_invalid_configs_rejected(self, coffee_config, override):
        coffee_config.update(override)
        with pytest.raises(ConfigurationError):
            CommodityConfig.from_dict(coffee_config)

    def test_configuration_error_is_value_error(self, coffee_config):
        coffee_config['harvest_volume'] = -5
        with pytest.raises(ValueError):
            CommodityConfig.from_dict(coffee_config)

    def test_to_dict_round_trip(self, coffee_config):
        config = CommodityConfig.from_dict(coffee_config)
        assert CommodityConfig.from_dict(config.to_dict()) == config


class TestLoadParamsJson:

    def test_overrides_merged_over_defaults(self, tmp_path):
        path = tmp_path / 'optimized.json'
        path.write_text(json.dumps({
            'strategies': {
                'consensus': {'parameters': {'consensus_threshold': 0.8}, 'best_value': 1234.5}
            }
        }))

        merged = load_params_json(str(path))

        assert merged['consensus']['consensus_threshold'] == 0.8
        assert merged['consensus']['evaluation_day'] == 14
        assert merged['equal_batch']['batch_size'] == 0.25

    def test_unreadable_file(self, tmp_path):
        path = tmp_path / 'broken.json'
        path.write_text('{not json')
        with pytest.raises(ConfigurationError):
            load_params_json(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_params_json(str(tmp_path / 'absent.json'))
