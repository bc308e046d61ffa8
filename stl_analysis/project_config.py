"""
JSON-based configuration for stl_analysis.

Configuration hierarchy (later overrides earlier, see load_config):
1. Built-in defaults (dataclasses below)
2. User config (~/.stlanalysis.json)
3. Working directory config (./.stlanalysis.json)
4. Project config next to the STL file
5. Explicit config path
6. CLI arguments (applied by the caller)

A later file only overrides values it sets to something other than the
built-in default.

Example .stlanalysis.json:
{
    "loader": {
        "deduplicate_vertices": true,
        "allow_empty": true
    },
    "validation": {
        "enabled": true,
        "require_watertight": false
    },
    "output": {
        "format": "json",
        "precision": 4
    },
    "batch": {
        "pattern": "*.stl",
        "parallel": true
    },
    "logging": {
        "level": "DEBUG",
        "json_file": "analysis.log.json"
    }
}
"""

import json
import logging
from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".stlanalysis.json"

OUTPUT_FORMATS = ("text", "json")


@dataclass
class LoaderConfig:
    """STL decoding options."""
    deduplicate_vertices: bool = True
    allow_empty: bool = True


@dataclass
class ValidationConfig:
    """Mesh validation options."""
    enabled: bool = True
    degenerate_area_threshold: float = 1e-10  # mm^2
    require_watertight: bool = False


@dataclass
class OutputConfig:
    """Report output options."""
    format: str = "text"  # "text" or "json"
    precision: int = 3


@dataclass
class BatchConfig:
    """Directory analysis options."""
    pattern: str = "*.stl"
    recursive: bool = False
    parallel: bool = False
    max_workers: Optional[int] = None  # None = executor default


@dataclass
class LoggingConfig:
    """Logging options."""
    level: str = "INFO"
    json_file: str = ""
    use_colors: bool = True

    @property
    def level_number(self) -> int:
        level = logging.getLevelName(self.level.upper())
        return level if isinstance(level, int) else logging.INFO


@dataclass
class ProjectConfig:
    """Complete configuration."""
    loader: LoaderConfig = field(default_factory=LoaderConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    def save(self, path: Union[str, Path]) -> None:
        """Save configuration to a JSON file."""
        path = Path(path)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(self.to_json())
        logger.info("Configuration saved to %s", path)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProjectConfig':
        """Create configuration from a dictionary.

        Unknown sections and keys (including "_comment") are ignored.

        Raises:
            ValueError: if output.format is not one of OUTPUT_FORMATS
        """
        config = cls()

        for section in fields(cls):
            values = data.get(section.name)
            if not isinstance(values, dict):
                continue
            target = getattr(config, section.name)
            for key, value in values.items():
                if not key.startswith('_') and hasattr(target, key):
                    setattr(target, key, value)

        if config.output.format not in OUTPUT_FORMATS:
            raise ValueError(
                f"Unknown output format {config.output.format!r}, expected one of {OUTPUT_FORMATS}"
            )

        return config

    @classmethod
    def from_json(cls, json_str: str) -> 'ProjectConfig':
        return cls.from_dict(json.loads(json_str))

    @classmethod
    def load(cls, path: Union[str, Path]) -> 'ProjectConfig':
        """Load configuration from a JSON file.

        Raises:
            FileNotFoundError: If file doesn't exist
            json.JSONDecodeError: If file is not valid JSON
        """
        path = Path(path)
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        logger.info("Configuration loaded from %s", path)
        return cls.from_dict(data)


def find_config_files(
    stl_path: Optional[Union[str, Path]] = None,
    explicit_config: Optional[Union[str, Path]] = None,
) -> List[Path]:
    """List existing configuration files, lowest precedence first.

    Order: ~/.stlanalysis.json, ./.stlanalysis.json, .stlanalysis.json in
    the STL file's directory, explicit config path. A file reachable by
    more than one route is listed once, at its highest precedence.
    """
    candidates = [Path.home() / CONFIG_FILENAME, Path.cwd() / CONFIG_FILENAME]
    if stl_path:
        candidates.append(Path(stl_path).parent / CONFIG_FILENAME)
    if explicit_config:
        explicit = Path(explicit_config)
        if explicit.exists():
            candidates.append(explicit)
        else:
            logger.warning("Explicit config not found: %s", explicit)

    found: Dict[Path, Path] = {}
    for candidate in candidates:
        if candidate.exists():
            key = candidate.resolve()
            found.pop(key, None)
            found[key] = candidate
    return list(found.values())


def find_config_file(
    stl_path: Optional[Union[str, Path]] = None,
    explicit_config: Optional[Union[str, Path]] = None,
) -> Optional[Path]:
    """Find the highest-precedence configuration file.

    Search order:
    1. Explicit config path (if provided)
    2. .stlanalysis.json in the STL file's directory
    3. .stlanalysis.json in the current working directory
    4. ~/.stlanalysis.json

    Returns:
        Path to config file if found, None otherwise
    """
    files = find_config_files(stl_path, explicit_config)
    return files[-1] if files else None


def load_config(
    stl_path: Optional[Union[str, Path]] = None,
    explicit_config: Optional[Union[str, Path]] = None,
) -> ProjectConfig:
    """Load and layer every configuration file found, falling back to defaults.

    Files are merged with merge_configs() from lowest to highest precedence.
    A config file that cannot be read or parsed is logged and skipped.
    """
    config = ProjectConfig()

    for config_path in find_config_files(stl_path, explicit_config):
        try:
            layer = ProjectConfig.load(config_path)
        except (json.JSONDecodeError, OSError, ValueError) as e:
            logger.error("Failed to load config %s: %s", config_path, e)
            continue
        config = merge_configs(config, layer)

    return config


def merge_configs(base: ProjectConfig, override: ProjectConfig) -> ProjectConfig:
    """Merge two configurations, override wins where it differs from the defaults."""
    merged = ProjectConfig.from_dict(base.to_dict())
    defaults = ProjectConfig()

    for section in fields(ProjectConfig):
        override_section = getattr(override, section.name)
        default_section = getattr(defaults, section.name)
        merged_section = getattr(merged, section.name)
        for key, value in asdict(override_section).items():
            if value != getattr(default_section, key):
                setattr(merged_section, key, value)

    return merged


def create_sample_config(path: Union[str, Path] = CONFIG_FILENAME) -> Path:
    """Write a commented sample configuration file.

    Returns:
        Path of the written file
    """
    sample: Dict[str, Any] = {
        "_comment": "stl-analysis configuration",
        "_version": "1.0",
    }
    notes = {
        "loader": "STL decoding; vertices are merged on exact coordinate match",
        "validation": "require_watertight rejects open or inconsistently wound meshes",
        "output": "format is 'text' or 'json'",
        "batch": "directory analysis; parallel runs files concurrently",
        "logging": "level name and optional JSON-lines log file",
    }
    for section, values in ProjectConfig().to_dict().items():
        sample[section] = {"_comment": notes[section], **values}

    path = Path(path)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(sample, f, indent=2, ensure_ascii=False)

    logger.info("Sample configuration created: %s", path)
    return path
