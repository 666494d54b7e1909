"""
YAML configuration loader with schema validation.

Loads team rosters, tunable parameters and start-up settings from YAML
files and validates them against JSON schemas.
"""

import yaml
import json
from dataclasses import fields
from pathlib import Path
from typing import List, Optional
import jsonschema

from .data_types import Team, SimulatorParams, SimulationConfig


class DataLoadError(Exception):
    """Raised when data loading or validation fails"""
    pass


def load_yaml(file_path: Path) -> dict:
    """Load YAML file and return parsed dict"""
    file_path = Path(file_path)
    if not file_path.exists():
        raise DataLoadError(f"File not found: {file_path}")

    try:
        with open(file_path, 'r') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise DataLoadError(f"YAML parse error in {file_path}: {e}")

    if not isinstance(data, dict):
        raise DataLoadError(f"Expected a mapping at top level of {file_path}")
    return data


def validate_against_schema(data: dict, schema_path: Path, data_path: Path):
    """Validate data dict against JSON schema"""
    if not schema_path.exists():
        # Schema validation is optional when no schema ships alongside the data
        return

    try:
        with open(schema_path, 'r') as f:
            schema = json.load(f)
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as e:
        raise DataLoadError(f"Validation error in {data_path}: {e.message}")
    except json.JSONDecodeError as e:
        raise DataLoadError(f"Invalid JSON schema {schema_path}: {e}")


def parse_teams(teams_data: list, source: Path) -> List[Team]:
    """Build Team objects from a list of mappings"""
    if not teams_data:
        raise DataLoadError(f"No teams defined in {source}")

    teams = []
    for i, team_data in enumerate(teams_data):
        try:
            team = Team(**team_data)
        except TypeError as e:
            raise DataLoadError(f"Invalid team #{i} in {source}: {e}")
        errors = team.validation_errors()
        if errors:
            raise DataLoadError(f"Invalid team #{i} in {source}: {'; '.join(errors)}")
        teams.append(team)
    return teams


def parse_params(params_data: dict, source: Path) -> SimulatorParams:
    """Build SimulatorParams from a mapping (missing keys use defaults)"""
    known = {f.name for f in fields(SimulatorParams)}
    unknown = sorted(set(params_data) - known)
    if unknown:
        raise DataLoadError(f"Unknown parameter(s) in {source}: {', '.join(unknown)}")

    params = SimulatorParams(**params_data)
    errors = params.validation_errors()
    if errors:
        raise DataLoadError(f"Invalid parameters in {source}: {'; '.join(errors)}")
    return params


def load_teams(file_path: Path, schema_dir: Optional[Path] = None) -> List[Team]:
    """Load a team roster from YAML (top-level key: teams)"""
    data = load_yaml(file_path)

    # Validate if schema available
    if schema_dir:
        schema_path = Path(schema_dir) / "teams.schema.json"
        validate_against_schema(data, schema_path, file_path)

    return parse_teams(data.get('teams', []), file_path)


def load_simulation_config(file_path: Path, schema_dir: Optional[Path] = None) -> SimulationConfig:
    """
    Load complete start-up configuration from YAML.

    Expected layout:
        simulation: {population, world_size?, seed?, workers?}
        parameters: {match_velocity_rate, avoidance_range, ...}   (optional)
        teams: [{acceleration, drag, size, name?}, ...]
    """
    data = load_yaml(file_path)

    # Validate if schema available
    if schema_dir:
        schema_path = Path(schema_dir) / "simulation.schema.json"
        validate_against_schema(data, schema_path, file_path)

    if 'simulation' not in data:
        raise DataLoadError(f"Missing 'simulation' section in {file_path}")
    simulation = data['simulation']

    if not isinstance(simulation, dict) or 'population' not in simulation:
        raise DataLoadError(f"Missing simulation.population in {file_path}")

    world_size = simulation.get('world_size')
    if world_size is not None:
        if isinstance(world_size, (int, float)):
            world_size = (float(world_size),) * 3
        elif isinstance(world_size, (list, tuple)) and len(world_size) == 3:
            world_size = tuple(float(w) for w in world_size)
        else:
            raise DataLoadError(f"simulation.world_size must be a number or 3 numbers in {file_path}")

    return SimulationConfig(
        population=simulation['population'],
        teams=parse_teams(data.get('teams', []), file_path),
        params=parse_params(data.get('parameters', {}) or {}, file_path),
        world_size=world_size,
        seed=simulation.get('seed'),
        workers=simulation.get('workers'),
        description=data.get('description')
    )
