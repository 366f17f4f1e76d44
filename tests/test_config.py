"""
Tests for configuration, time intervals and error handling.
"""
import json
import logging
from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from lagk.core.config import (
    LagKConfig, LoggingConfig, ReachConfig, SolverConfig, get_config, set_config,
    setup_logging
)
from lagk.core.exceptions import (
    ConfigurationError, DataSourceError, ErrorContext, LagKError, StateError,
    TableIndexError, handle_exception
)
from lagk.core.types import TimeInterval, TimeUnit


@pytest.fixture
def config():
    return LagKConfig(
        project_name="test_basin",
        reaches={
            "UPPER": {"k": 12.0, "lag": 6.0, "initial_outflow": 50.0},
            "LOWER": {
                "interval": "1Day",
                "k_table": [[0, 0.5], [1000, 1.0]],
                "lag_table": [[0, 1], [500, 0.5]],
                "trans_loss_coef": 0.9,
                "trans_loss_level": 10.0,
            },
        },
    )


@pytest.fixture
def restore_config():
    yield
    set_config(None)


class TestLagKConfig:

    def test_reach_ids_filled_in(self, config):
        assert config.get_reach("UPPER").reach_id == "UPPER"
        assert config.get_reach("LOWER").time_interval == TimeInterval(TimeUnit.DAY, 1)

    def test_unknown_reach(self, config):
        with pytest.raises(KeyError):
            config.get_reach("MIDDLE")

    def test_yaml_round_trip(self, config, tmp_path):
        path = tmp_path / "config" / "lagk.yaml"
        config.to_yaml(path)
        loaded = LagKConfig.from_yaml(path)
        assert loaded.project_name == "test_basin"
        assert loaded.reaches == config.reaches
        assert loaded.solver == config.solver

    def test_missing_yaml(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            LagKConfig.from_yaml(tmp_path / "absent.yaml")

    def test_solver_env_override(self, monkeypatch):
        monkeypatch.setenv("LAGK_SOLVER_MAX_SEGMENT_ITERATIONS", "7")
        assert SolverConfig().max_segment_iterations == 7

    def test_solver_limits_validated(self):
        with pytest.raises(ValidationError):
            SolverConfig(convergence_tolerance=1.5)
        with pytest.raises(ValidationError):
            SolverConfig(max_segment_iterations=0)
        with pytest.raises(ValidationError):
            SolverConfig(max_segment_iterations=22)

    def test_iteration_cap_cannot_be_raised_from_env(self, monkeypatch):
        monkeypatch.setenv("LAGK_SOLVER_MAX_SEGMENT_ITERATIONS", "50")
        with pytest.raises(ValidationError):
            SolverConfig()

    def test_singleton(self, config, restore_config):
        set_config(config)
        assert get_config() is config


class TestReachConfig:

    def test_k_and_k_table_exclusive(self):
        with pytest.raises(ValidationError):
            ReachConfig(reach_id="R", k=6.0, k_table=[[0, 6]])

    def test_lag_and_lag_table_exclusive(self):
        with pytest.raises(ValidationError):
            ReachConfig(reach_id="R", lag=6.0, lag_table=[[0, 6]])

    def test_unsorted_table(self):
        with pytest.raises(ValidationError):
            ReachConfig(reach_id="R", k_table=[[100, 6], [0, 12]])

    def test_bad_rows(self):
        with pytest.raises(ValidationError):
            ReachConfig(reach_id="R", lag_table=[[0, 6, 1]])
        with pytest.raises(ValidationError):
            ReachConfig(reach_id="R", k_table=[])

    def test_negative_k(self):
        with pytest.raises(ValidationError):
            ReachConfig(reach_id="R", k=-1.0)
        with pytest.raises(ValidationError):
            ReachConfig(reach_id="R", k_table=[[0, 6], [100, -1]])

    def test_bad_interval(self):
        with pytest.raises(ValidationError):
            ReachConfig(reach_id="R", interval="6Fortnight")


class TestLogging:

    def test_log_file(self, tmp_path):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        log_file = tmp_path / "logs" / "lagk.log"
        try:
            setup_logging(LagKConfig(log=LoggingConfig(log_level="DEBUG", log_file=log_file)))
            logging.getLogger("lagk.test").debug("routing reach UPPER")
            for handler in root.handlers:
                handler.flush()
            assert "routing reach UPPER" in log_file.read_text(encoding="utf-8")
        finally:
            for handler in root.handlers:
                if handler not in saved_handlers:
                    handler.close()
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)


class TestTimeInterval:

    @pytest.mark.parametrize("text,base,multiplier", [
        ("6Hour", TimeUnit.HOUR, 6),
        ("1Day", TimeUnit.DAY, 1),
        ("Day", TimeUnit.DAY, 1),
        ("15Minutes", TimeUnit.MINUTE, 15),
        (" 3 hour ", TimeUnit.HOUR, 3),
    ])
    def test_parse(self, text, base, multiplier):
        interval = TimeInterval.parse(text)
        assert interval.base is base
        assert interval.multiplier == multiplier

    @pytest.mark.parametrize("text", ["", "6", "6Fortnight", "Hour6"])
    def test_parse_invalid(self, text):
        with pytest.raises(ValueError):
            TimeInterval.parse(text)

    def test_non_positive_multiplier(self):
        with pytest.raises(ValueError):
            TimeInterval(TimeUnit.HOUR, 0)

    def test_arithmetic(self):
        interval = TimeInterval.parse("6Hour")
        start = datetime(2024, 1, 1)
        assert str(interval) == "6Hour"
        assert interval.length == 6
        assert interval.minutes == 360
        assert interval.to_timedelta() == timedelta(hours=6)
        assert interval.add(start, 3) == datetime(2024, 1, 1, 3)
        assert interval.step(start, 2) == datetime(2024, 1, 1, 12)
        assert interval.step(start, -1) == datetime(2023, 12, 31, 18)


class TestExceptions:

    def test_message_includes_context(self):
        error = StateError("no state", ErrorContext(reach_id="R1", time="2024-01-01T00:00:00"))
        text = str(error)
        assert text.startswith("StateError: no state")
        assert "[Reach: R1]" in text
        assert "[Time: 2024-01-01T00:00:00]" in text

    def test_table_index_error_is_index_error(self):
        assert issubclass(TableIndexError, IndexError)

    @pytest.mark.parametrize("exc,expected", [
        (json.JSONDecodeError("bad", "{", 0), StateError),
        (FileNotFoundError("inflows.csv"), DataSourceError),
        (KeyError("R1"), StateError),
        (IndexError("row 9"), TableIndexError),
        (ValueError("bad lag"), ConfigurationError),
        (RuntimeError("other"), LagKError),
    ])
    def test_handle_exception(self, exc, expected):
        context = ErrorContext(component="test")
        wrapped = handle_exception(exc, context)
        assert type(wrapped) is expected
        assert wrapped.context is context

    def test_lagk_errors_pass_through(self):
        error = ConfigurationError("bad table")
        assert handle_exception(error) is error
