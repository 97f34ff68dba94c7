"""
CLI Utilities for Repli-seq Analysis Scripts

Shared utilities for command-line interface scripts, including
YAML config loading, logging setup and run summaries.
"""

import json
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import yaml


def load_yaml_config(config_path: str) -> Dict:
    """
    Load YAML configuration file with environment variable expansion.

    Supports ${ENV_VAR} or $ENV_VAR syntax for environment variables.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML parsing fails
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        content = f.read()

    content = os.path.expandvars(content)
    config = yaml.safe_load(content)

    return config or {}


def merge_configs(yaml_config: Optional[Dict], cli_args: Dict) -> Dict:
    """
    Merge YAML config with command-line arguments.

    CLI arguments override YAML values. Only non-None CLI args are used.

    Args:
        yaml_config: Configuration from YAML file (or None)
        cli_args: Arguments from command line (argparse namespace as dict)

    Returns:
        Merged configuration dictionary
    """
    merged = yaml_config.copy() if yaml_config else {}

    for key, value in cli_args.items():
        if value is not None:
            merged[key] = value

    return merged


def parse_named_paths(pairs: Optional[List[str]], option: str = '--input') -> Optional[Dict[str, str]]:
    """
    Parse repeated NAME=PATH command-line values into a dictionary.

    Args:
        pairs: Values such as ['S1=S1.bam', 'S2=S2.bam'] (or None)
        option: Option name for error messages

    Returns:
        Ordered name -> path dictionary, or None when no values were given

    Raises:
        ValueError: If a value has no '=' or a name is repeated
    """
    if not pairs:
        return None

    parsed = {}
    for pair in pairs:
        name, sep, path = pair.partition('=')
        if not sep or not name or not path:
            raise ValueError(f"{option} expects NAME=PATH, got '{pair}'")
        if name in parsed:
            raise ValueError(f"{option} name given twice: {name}")
        parsed[name] = path
    return parsed


def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure logging for CLI scripts.

    Args:
        verbose: If True, set level to DEBUG, otherwise INFO
        log_file: Optional path to log file

    Returns:
        Configured logger instance
    """
    level = logging.DEBUG if verbose else logging.INFO

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    logger = logging.getLogger()
    logger.setLevel(level)
    logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def print_config_summary(config: Dict, title: str = "Configuration") -> None:
    """
    Pretty print configuration dictionary.

    Args:
        config: Configuration dictionary to print
        title: Title for the summary
    """
    print("\n" + "=" * 70)
    print(f"  {title}")
    print("=" * 70)

    for key, value in sorted(config.items()):
        if isinstance(value, (list, tuple)):
            if len(value) > 3:
                value_str = f"[{value[0]}, {value[1]}, ... ({len(value)} items)]"
            else:
                value_str = str(value)
        elif isinstance(value, dict):
            value_str = f"{{...}} ({len(value)} keys)"
        elif isinstance(value, str) and len(value) > 50:
            value_str = value[:47] + "..."
        else:
            value_str = str(value)

        print(f"  {key:25s} : {value_str}")

    print("=" * 70 + "\n")


def print_run_summary(title: str, rows: Dict[str, object]) -> None:
    """
    Print an end-of-run summary block.

    Args:
        title: Banner title
        rows: Label -> value pairs, printed in order
    """
    print("\n" + "=" * 70)
    print(f"  {title}")
    print("=" * 70)
    for label, value in rows.items():
        print(f"  {label:20s}: {value}")
    print("=" * 70 + "\n")


def save_run_metadata(metadata: Dict, output_dir: str, filename: str = "run_metadata.json") -> Path:
    """
    Save a run metadata dictionary as JSON.

    Args:
        metadata: Metadata to save
        output_dir: Output directory path
        filename: Output filename

    Returns:
        Path to saved file
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    metadata_file = output_path / filename
    with open(metadata_file, 'w') as f:
        json.dump(metadata, f, indent=2, default=str)

    return metadata_file


def create_timestamped_dir(base_dir: str, prefix: str = "") -> Path:
    """
    Create a timestamped output directory.

    Args:
        base_dir: Base directory path
        prefix: Optional prefix for directory name

    Returns:
        Path to created directory
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    dir_name = f"{prefix}_{timestamp}" if prefix else timestamp

    output_dir = Path(base_dir) / dir_name
    output_dir.mkdir(parents=True, exist_ok=True)

    return output_dir


def validate_required_keys(config: Dict, required_keys: list, config_name: str = "config") -> None:
    """
    Validate that required keys are present in configuration.

    Args:
        config: Configuration dictionary
        required_keys: List of required key names
        config_name: Name of configuration (for error messages)

    Raises:
        ValueError: If any required key is missing
    """
    missing = [key for key in required_keys if key not in config]

    if missing:
        raise ValueError(
            f"Missing required {config_name} keys: {', '.join(missing)}\n"
            f"Please provide these either in config file or via command-line arguments."
        )
