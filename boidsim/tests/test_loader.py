"""
Test configuration loading

Verifies YAML -> dataclass conversion and schema/parameter validation.
"""

from pathlib import Path

import pytest

from boidsim.data_types import SimulatorParams, Team
from boidsim.loader import DataLoadError, load_simulation_config, load_teams


DATA_DIR = Path(__file__).parent.parent.parent / "data"
SCHEMA_DIR = Path(__file__).parent.parent.parent / "schemas"


def write_yaml(tmp_path, text, name="config.yaml"):
    path = tmp_path / name
    path.write_text(text)
    return path


def test_load_default_simulation():
    config = load_simulation_config(DATA_DIR / "simulation.yaml", schema_dir=SCHEMA_DIR)

    assert config.population == 1024
    assert config.world_size is None
    assert config.seed == 12345
    assert config.workers == 4
    assert config.params == SimulatorParams()
    assert [t.name for t in config.teams] == ["red", "green", "blue"]
    assert config.teams[2] == Team(acceleration=11.0, drag=0.04, size=0.33, name="blue")
    assert "three-team" in config.description


def test_load_small_world():
    config = load_simulation_config(DATA_DIR / "small_world.yaml", schema_dir=SCHEMA_DIR)

    assert config.population == 64
    assert config.world_size == (30.0, 30.0, 30.0)
    assert config.workers == 1
    assert len(config.teams) == 1


def test_load_teams():
    teams = load_teams(DATA_DIR / "teams.yaml", schema_dir=SCHEMA_DIR)

    assert len(teams) == 3
    assert teams[0].acceleration == 4.0
    assert teams[1].drag == 0.03


def test_scalar_world_size_expands(tmp_path):
    path = write_yaml(tmp_path, """
simulation:
  population: 10
  world_size: 25
teams:
  - {acceleration: 4.0, drag: 0.02}
""")

    config = load_simulation_config(path, schema_dir=SCHEMA_DIR)

    assert config.world_size == (25.0, 25.0, 25.0)
    assert config.teams[0].size == 1.0
    assert config.teams[0].name is None


def test_partial_parameters_use_defaults(tmp_path):
    path = write_yaml(tmp_path, """
simulation:
  population: 10
parameters:
  avoidance_rate: 8.0
teams:
  - {acceleration: 4.0, drag: 0.02}
""")

    config = load_simulation_config(path)

    assert config.params.avoidance_rate == 8.0
    assert config.params.coherence_rate == SimulatorParams().coherence_rate


def test_missing_file():
    with pytest.raises(DataLoadError, match="not found"):
        load_simulation_config(DATA_DIR / "does_not_exist.yaml")


def test_malformed_yaml(tmp_path):
    path = write_yaml(tmp_path, "simulation: [unclosed\n")

    with pytest.raises(DataLoadError):
        load_simulation_config(path)


@pytest.mark.parametrize("text", [
    # population must be >= 1
    "simulation: {population: 0}\nteams: [{acceleration: 4.0, drag: 0.02}]\n",
    # teams required
    "simulation: {population: 10}\n",
    # unknown parameter
    "simulation: {population: 10}\nparameters: {turn_rate: 1.0}\nteams: [{acceleration: 4.0, drag: 0.02}]\n",
    # avoidance range must be positive
    "simulation: {population: 10}\nparameters: {avoidance_range: 0}\nteams: [{acceleration: 4.0, drag: 0.02}]\n",
    # world size needs three components
    "simulation: {population: 10, world_size: [30, 30]}\nteams: [{acceleration: 4.0, drag: 0.02}]\n",
    # team drag missing
    "simulation: {population: 10}\nteams: [{acceleration: 4.0}]\n",
])
def test_schema_violations(tmp_path, text):
    path = write_yaml(tmp_path, text)

    with pytest.raises(DataLoadError):
        load_simulation_config(path, schema_dir=SCHEMA_DIR)


@pytest.mark.parametrize("text", [
    "teams: [{acceleration: 4.0, drag: 0.02}]\n",
    "simulation: {seed: 3}\nteams: [{acceleration: 4.0, drag: 0.02}]\n",
    "simulation: {population: 10}\nteams: []\n",
    "simulation: {population: 10}\nparameters: {turn_rate: 1.0}\nteams: [{acceleration: 4.0, drag: 0.02}]\n",
    "simulation: {population: 10}\nparameters: {time_scale: -1}\nteams: [{acceleration: 4.0, drag: 0.02}]\n",
    "simulation: {population: 10, world_size: [30, 30]}\nteams: [{acceleration: 4.0, drag: 0.02}]\n",
    "simulation: {population: 10}\nteams: [{acceleration: 4.0, drag: 0.02, colour: red}]\n",
    "simulation: {population: 10}\nteams: [{acceleration: .nan, drag: 0.02}]\n",
    "simulation: {population: 10}\nteams: [{acceleration: 4.0, drag: -0.5}]\n",
    "simulation: {population: 10}\nteams: [{acceleration: 4.0, drag: 0.02, size: 0}]\n",
])
def test_semantic_checks_without_schema(tmp_path, text):
    path = write_yaml(tmp_path, text)

    with pytest.raises(DataLoadError):
        load_simulation_config(path)


def test_top_level_must_be_mapping(tmp_path):
    path = write_yaml(tmp_path, "- just\n- a list\n")

    with pytest.raises(DataLoadError):
        load_teams(path)
