"""Smoke tests for configuration, simulation, validation, reporting and the CLI.

These tests verify basic functionality without deep validation.
Run these first to catch obvious breakage.
"""

import json
from decimal import Decimal

import pytest
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import plotly.graph_objects as go
from pydantic import ValidationError

from flashstake.cli import main
from flashstake.config.loader import config_from_dict, load_config, merge_overrides
from flashstake.config.schema import Config
from flashstake.engine.errors import InputValidationError
from flashstake.engine.stakes import Stake
from flashstake.reporting.charts import create_mint_curve_chart, create_redemption_chart
from flashstake.reporting.export import (
    events_to_frame,
    export_csv,
    export_json,
    records_to_frame,
    stakes_to_frame,
)
from flashstake.simulation.runner import SimulationResult, SimulationRunner
from flashstake.validation.sanity_checks import SanityChecker, validate_simulation_results


def small_config(**simulation):
    """Default config with a short simulation."""
    data = {'simulation': {'runs': 2, 'stakes_per_run': 5, 'max_calls_per_stake': 3}}
    data['simulation'].update(simulation)
    return config_from_dict(data)


@pytest.fixture(scope="module")
def result():
    return SimulationRunner(small_config()).run(random_seed=7)


class TestConfigLoading:
    """Smoke tests for configuration loading."""

    def test_load_default_config(self):
        """Config loads without errors."""
        config = load_config()
        assert config is not None
        assert isinstance(config, Config)

    def test_config_has_required_sections(self):
        """Config contains all expected sections."""
        config = load_config()
        assert hasattr(config, 'durations')
        assert hasattr(config, 'quoting')
        assert hasattr(config, 'fees')
        assert hasattr(config, 'incentives')
        assert hasattr(config, 'simulation')

    def test_defaults_match_model_defaults(self):
        """Packaged YAML agrees with the schema defaults."""
        assert load_config().to_dict() == Config().to_dict()

    def test_config_hash_is_deterministic(self):
        """Same config produces same hash."""
        config1 = load_config()
        config2 = load_config()
        assert config1.compute_hash() == config2.compute_hash()

    def test_config_hash_tracks_changes(self):
        """Changing a parameter changes the hash."""
        config = load_config()
        changed = config_from_dict({'fees': {'mint_fee_bps': 100, 'mint_fee_recipient': "0xfee"}})
        assert config.compute_hash() != changed.compute_hash()

    def test_duration_bounds_validated(self):
        """Max duration must exceed min duration."""
        with pytest.raises(ValidationError):
            Config.from_dict({'durations': {'min_stake_duration': 3600, 'max_stake_duration': 60}})

    def test_fee_cap_validated(self):
        """Initial fee cannot exceed the cap."""
        with pytest.raises(ValidationError):
            Config.from_dict({'fees': {'mint_fee_bps': 2500}})

    def test_yaml_override(self, tmp_path):
        """Values from a YAML file override the defaults."""
        path = tmp_path / "config.yaml"
        path.write_text("fees:\n  max_mint_fee_bps: 1000\n")
        config = load_config(str(path))
        assert config.fees.max_mint_fee_bps == 1000
        assert config.durations.min_stake_duration == 60

    def test_partial_section_keeps_other_defaults(self, tmp_path):
        """Overriding one key leaves the rest of that section at its default."""
        path = tmp_path / "config.yaml"
        path.write_text("simulation:\n  runs: 3\n")
        config = load_config(str(path))
        assert config.simulation.runs == 3
        assert config.simulation.stakes_per_run == 25
        assert config.simulation.venue_rate_bps == 400

    def test_empty_override_file(self, tmp_path):
        """An empty file changes nothing."""
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(str(path)).to_dict() == load_config().to_dict()

    def test_missing_file_rejected(self, tmp_path):
        """A missing override file is a coded input error."""
        with pytest.raises(InputValidationError) as exc_info:
            load_config(str(tmp_path / "missing.yaml"))
        assert exc_info.value.code == "INVALID_INPUT"

    def test_non_mapping_rejected(self, tmp_path):
        """Top level of a config file must be a mapping."""
        path = tmp_path / "list.yaml"
        path.write_text("- runs\n- 3\n")
        with pytest.raises(InputValidationError):
            load_config(str(path))

    def test_merge_overrides(self):
        """Nested sections merge key by key; the inputs are not modified."""
        base = {'fees': {'mint_fee_bps': 0, 'max_mint_fee_bps': 2000}, 'seed': 1}
        merged = merge_overrides(base, {'fees': {'mint_fee_bps': 50}, 'extra': [1]})
        assert merged == {
            'fees': {'mint_fee_bps': 50, 'max_mint_fee_bps': 2000},
            'seed': 1,
            'extra': [1],
        }
        assert base['fees']['mint_fee_bps'] == 0

    def test_config_from_dict_layers_on_defaults(self):
        """Dict overrides keep the packaged defaults for untouched keys."""
        config = small_config()
        assert config.simulation.runs == 2
        assert config.simulation.random_seed == 42
        assert config.quoting.mint_rate_per_second == 31709792


class TestSimulationRunner:
    """Smoke tests for full simulation."""

    def test_run_simulation(self, result):
        """Simulation completes without errors."""
        assert isinstance(result, SimulationResult)
        assert result.random_seed == 7
        assert len(result.stakes) == 5
        assert len(result.records) >= 5

    def test_every_stake_settles(self, result):
        """Each stake is settled early or at maturity."""
        m = result.final_metrics
        assert m['settled_stakes'] == 5
        assert m['outstanding_principal'] == 0
        assert m['total_principal_returned'] == m['total_staked']
        assert m['strategy_principal'] == 0

    def test_ftoken_supply_reconciles(self, result):
        """fToken supply equals minted minus burned."""
        m = result.final_metrics
        burned = m['ftokens_burned_for_principal'] + m['ftokens_burned_for_yield']
        assert m['ftoken_total_supply'] == m['ftokens_minted'] - burned

    def test_no_conservation_errors(self, result):
        """Stake bounds hold after every run."""
        assert result.conservation_errors == []

    def test_records_respect_owed_burn(self, result):
        """No call burns more than was owed at the time."""
        for record in result.records:
            assert record['ftokens_burned'] <= record['required_burn']
            assert record['total_staked_withdrawn'] <= record['staked_amount']

    def test_reproducible(self):
        """Same seed gives the same path."""
        runner = SimulationRunner(small_config(stakes_per_run=3))
        first = runner.run(random_seed=11)
        second = runner.run(random_seed=11)
        assert first.records == second.records
        assert first.final_metrics == second.final_metrics

    def test_run_batch_uses_consecutive_seeds(self):
        """Batch runs start at the given seed."""
        runner = SimulationRunner(small_config(stakes_per_run=2))
        results = runner.run_batch(random_seed=100)
        assert [r.random_seed for r in results] == [100, 101]

    def test_fee_without_recipient_goes_to_treasury(self):
        """A configured fee is routed to the simulation treasury."""
        config = config_from_dict({
            'fees': {'mint_fee_bps': 1000},
            'simulation': {'stakes_per_run': 2, 'max_calls_per_stake': 2},
        })
        run = SimulationRunner(config).run(random_seed=3)
        assert all(s.ftokens_fee > 0 for s in run.stakes)
        assert run.conservation_errors == []


class TestValidation:
    """Smoke tests for sanity checks."""

    def test_simulation_passes_validation(self, result):
        """A clean run yields no errors."""
        warnings = validate_simulation_results(result)
        assert [w for w in warnings if w.severity == "error"] == []

    def test_default_config_has_no_warnings(self):
        """Defaults keep the par convention and sane bounds."""
        assert SanityChecker(load_config()).check_config_inputs() == []

    def test_fee_without_recipient_warns(self):
        """Fee without a recipient is flagged."""
        config = config_from_dict({'fees': {'mint_fee_bps': 500}})
        warnings = SanityChecker(config).check_config_inputs()
        assert any("recipient" in w.message for w in warnings)

    def test_tampered_stake_flagged(self):
        """Over-withdrawn and mis-quoted stakes are errors."""
        checker = SanityChecker(load_config())
        stake = Stake(1, "0xa", "0xs", 0, 31_536_000, 100, 50, 0, total_staked_withdrawn=101)
        warnings = checker.check_stake(stake)
        assert len([w for w in warnings if w.severity == "error"]) == 2

    def test_ledger_mismatch_flagged(self):
        """Supply that does not reconcile is an error."""
        checker = SanityChecker(load_config())
        warnings = checker.check_ledgers({'ftokens_minted': 10, 'ftoken_total_supply': 9})
        assert warnings and warnings[0].category == "conservation"


class TestReporting:
    """Smoke tests for export and charts."""

    def test_frames(self, result):
        """Frames have one row per item."""
        stakes = stakes_to_frame(result.stakes)
        assert len(stakes) == 5
        assert 'remaining_principal' in stakes.columns

        records = records_to_frame(result.records)
        assert len(records) == len(result.records)
        assert records['withdrawn_fraction'].between(0, 1).all()

        events = events_to_frame(result.events)
        assert events.columns[0] == 'event'
        assert (events['event'] == 'Staked').sum() == 5

    def test_export_csv(self, result, tmp_path):
        """CSV export writes one line per call plus a header."""
        path = tmp_path / "calls.csv"
        export_csv(result, str(path))
        lines = path.read_text().strip().splitlines()
        assert len(lines) == len(result.records) + 1

    def test_export_json(self, result, tmp_path):
        """JSON export round-trips through the json module."""
        path = tmp_path / "run.json"
        export_json(result, str(path))
        data = json.loads(path.read_text())
        assert data['random_seed'] == 7
        assert data['config_hash'] == result.config.compute_hash()
        assert len(data['stakes']) == 5

    def test_mint_curve_chart(self):
        """Mint curve skips durations below the floor."""
        fig = create_mint_curve_chart(durations_days=[0, 1, 365])
        assert isinstance(fig, go.Figure)
        assert list(fig.data[0].x) == [1, 365]
        assert fig.data[0].y[-1] == pytest.approx(1.0)

    def test_redemption_chart(self, result):
        """Redemption chart follows the first stake."""
        fig = create_redemption_chart(result.records)
        assert isinstance(fig, go.Figure)
        assert len(fig.data) == 2
        assert fig.data[0].y[-1] == pytest.approx(100.0)


class TestCLI:
    """Smoke tests for the command line."""

    @staticmethod
    def _values(out):
        return dict(line.split(None, 1) for line in out.strip().splitlines())

    def test_quote(self, capsys):
        """Quote prints the fee split."""
        assert main(["quote", "1000", "--days", "365", "--fee-bps", "2000"]) == 0
        values = self._values(capsys.readouterr().out)
        assert Decimal(values['total_ftokens']) == Decimal("1000.000000512")
        assert Decimal(values['ftokens_fee']) == Decimal("200.0000001024")

    def test_redeem_quote(self, capsys):
        """Redemption quote at 60% elapsed."""
        argv = ["redeem-quote", "1000", "--elapsed", "0.6", "--burn", "100.0000000512"]
        assert main(argv) == 0
        values = self._values(capsys.readouterr().out)
        assert Decimal(values['principal_released']) == Decimal(100)
        assert values['settles'] == "False"

    def test_engine_error_is_reported(self, capsys):
        """Engine errors exit with status 1."""
        assert main(["quote", "1", "--seconds", "30"]) == 1
        assert "DURATION_TOO_LOW" in capsys.readouterr().err

    def test_missing_config_is_reported(self, capsys, tmp_path):
        """An unreadable --config exits with status 1."""
        argv = ["--config", str(tmp_path / "nope.yaml"), "quote", "1"]
        assert main(argv) == 1
        assert "INVALID_INPUT" in capsys.readouterr().err

    def test_simulate(self, capsys, tmp_path):
        """Simulate runs from a YAML config and writes JSON."""
        config_path = tmp_path / "sim.yaml"
        config_path.write_text("simulation:\n  runs: 1\n  stakes_per_run: 3\n")
        out_path = tmp_path / "run.json"
        assert main(["--config", str(config_path), "simulate", "--json", str(out_path)]) == 0
        assert "stakes=3" in capsys.readouterr().out
        assert out_path.exists()
