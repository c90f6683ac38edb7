# ===================================== IMPORTS ====================================== #

# Standard Library Imports
from pathlib import Path
from typing import Dict, Union

# Third-Party Imports
import yaml

# Local Imports
from workflow_otu import constants

# ==================================== FUNCTIONS ===================================== #

def resolve_relative_paths(config: Dict, config_dir: Path) -> Dict:
    """Converts any relative paths in the configuration to absolute paths based on
    the directory of the config file."""
    for key, value in config.items():
        if isinstance(value, str):
            if value.startswith("./") or value.startswith("../"):
                config[key] = (config_dir / value).resolve()
        elif isinstance(value, dict):
            config[key] = resolve_relative_paths(value, config_dir)
    return config


def validate_config(config: Dict) -> Dict:
    """Check the enumerated settings before any data is read.

    Raises:
        ValueError: For an unknown orientation, orphan policy, normalization
                    method or rounding policy, or for missing input paths.
    """
    input_cfg = config.get("input", {})
    for key in ("abundance", "taxonomy", "metadata"):
        if not input_cfg.get(key):
            raise ValueError(f"Missing required config value: input.{key}")

    choices = [
        ("input.orientation", input_cfg.get("orientation", constants.DEFAULT_ORIENTATION),
         constants.ORIENTATIONS),
        ("input.missing_metadata",
         input_cfg.get("missing_metadata", constants.DEFAULT_MISSING_METADATA),
         constants.ORPHAN_POLICIES),
        ("input.missing_taxonomy",
         input_cfg.get("missing_taxonomy", constants.DEFAULT_MISSING_TAXONOMY),
         constants.ORPHAN_POLICIES),
        ("normalization.method",
         config.get("normalization", {}).get("method", constants.DEFAULT_NORMALIZATION_METHOD),
         constants.NORMALIZATION_METHODS),
        ("normalization.rounding",
         config.get("normalization", {}).get("rounding", constants.DEFAULT_ROUNDING),
         constants.ROUNDING_POLICIES),
    ]
    for name, value, allowed in choices:
        if value not in allowed:
            raise ValueError(
                f"Invalid value for {name}: '{value}'. Expected one of {list(allowed)}"
            )
    return config


def get_config(
    config_path: Union[str, Path] = constants.DEFAULT_CONFIG_PATH
) -> Dict:
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r") as file:
        config = yaml.safe_load(file) or {}

    config_dir = config_path.resolve().parent
    config = resolve_relative_paths(config, config_dir)

    return validate_config(config)
