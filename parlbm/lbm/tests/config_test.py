import pytest

from parlbm.lbm import (
    BoundaryConditions,
    BoundaryOption,
    ConfigurationError,
    LatticeConfig,
    ResultsType,
    load_config,
)


def test_defaults():
    config = LatticeConfig()

    assert config.results_type is ResultsType.DENSITY
    assert config.boundary_conditions is BoundaryConditions.BOUNCE_BACK
    assert config.refresh_steps == 10
    assert config.tau == 0.6
    assert config.num_threads == 8
    assert config.inlet_density == 1.05
    assert config.outlet_density == 1.0
    assert not config.periodic
    assert config.validate() is config


def test_enum_parsing_is_case_insensitive():
    config = LatticeConfig(
        results_type="Vorticity",
        boundary_conditions="Periodic",
        inlet_option="VELOCITY",
        outlet_option="none",
    )

    assert config.results_type is ResultsType.VORTICITY
    assert config.periodic
    assert config.inlet_option is BoundaryOption.VELOCITY
    assert config.outlet_option is BoundaryOption.NONE


def test_unknown_enum_value():
    with pytest.raises(ConfigurationError, match="ResultsType"):
        LatticeConfig(results_type="pressure")


def test_num_threads_none_uses_cpu_count():
    assert LatticeConfig(num_threads=None).num_threads >= 1


@pytest.mark.parametrize(
    "options",
    [
        {"num_threads": 0},
        {"refresh_steps": 0},
        {"warmup_steps": -1},
        {"tau": 0.5},
        {"initial_density": 0.0},
        {"inlet_density": -1.0},
    ],
)
def test_validate_rejects_invalid_options(options):
    with pytest.raises(ConfigurationError):
        LatticeConfig(**options).validate()


def test_from_dict_accepts_camel_case():
    config = LatticeConfig.from_dict(
        {
            "resultsType": "speed",
            "boundaryConditions": "BounceBack",
            "accelX": 0.001,
            "useAccelX": True,
            "numThreads": 2,
            "tau": 0.7,
        }
    )

    assert config.results_type is ResultsType.SPEED
    assert config.accel_x == 0.001
    assert config.use_accel_x
    assert config["numThreads"] == 2
    assert config.get("tau") == 0.7
    assert config.get("missing", 3) == 3


def test_from_dict_rejects_unknown_options():
    with pytest.raises(ConfigurationError, match="accelY"):
        LatticeConfig.from_dict({"accelY": 0.1})


def test_update_returns_a_new_config():
    config = LatticeConfig()
    other = config.update(num_threads=2)

    assert other.num_threads == 2
    assert config.num_threads == 8


def test_load_config(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text(
        "lattice:\n"
        "  resultsType: vorticity\n"
        "  boundaryConditions: periodic\n"
        "  refreshSteps: 5\n"
        "  num_threads: 3\n"
    )

    config = load_config(path)

    assert config.results_type is ResultsType.VORTICITY
    assert config.periodic
    assert config.refresh_steps == 5
    assert config.num_threads == 3


def test_load_config_top_level_options(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("tau: 0.9\n")

    assert load_config(path).tau == 0.9


def test_load_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yml")
