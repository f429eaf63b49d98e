"""Project configuration for codeclear, stored as ``.codeclear.toml``.

Every section is optional. A missing file yields the defaults below; an
unreadable or malformed file also yields the defaults, with a warning, so
that analysis never aborts because of configuration.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import toml

from .config import CONFIG_FILENAME

logger = logging.getLogger(__name__)


@dataclass
class EntryPointsConfig:
    """Which declarations are treated as roots of the reachability walk."""
    detect_main: bool = True
    detect_ui_application_root: bool = True
    detect_framework_application_root: bool = True
    include_public_api: bool = True
    include_interop_symbols: bool = True
    include_test_entry_points: bool = True
    custom_patterns: List[str] = field(default_factory=list)


@dataclass
class RiskScoringConfig:
    public_api_weight: int = 90
    open_api_weight: int = 95
    interop_dynamic_weight: int = 95
    protocol_witness_weight: int = 85
    ui_binding_weight: int = 80
    test_only_weight: int = 40
    private_helper_weight: int = 10
    private_helper_max_bytes: int = 200


@dataclass
class ProtectionsConfig:
    """Marker categories whose declarations are never reported."""
    protect_interop: bool = True
    protect_dynamic: bool = True
    protect_ui_binding: bool = True
    protect_persistence: bool = True
    protect_inlinable: bool = True
    protect_abi_boundary: bool = True
    protect_restricted_interface: bool = True
    protect_previews: bool = True
    protected_name_suffixes: List[str] = field(default_factory=lambda: ["_Previews", "_preview"])


@dataclass
class TestingConfig:
    __test__ = False  # keep pytest from collecting this dataclass

    run_tests: bool = True
    command: str = "python -m pytest -q"
    timeout: int = 300
    require_verification: bool = False


@dataclass
class GitConfig:
    enabled: bool = True
    create_branch: bool = True
    auto_commit: bool = True
    branch_prefix: str = "codeclear"
    commit_message_format: str = "chore: clear unused code ({count} declarations)"


def _default_decorator_markers() -> Dict[str, List[str]]:
    return {
        "interop": ["*.def_extern", "*CFUNCTYPE", "*.expose", "dbus.service.method"],
        "ui_binding": ["Slot", "*.Slot", "pyqtSlot", "*.pyqtSlot", "*.on"],
        "persistence": ["*.validates", "*.hybrid_property", "*.declared_attr", "*.listens_for", "*.receiver"],
        "inlinable": ["export", "*.export", "overload", "*.overload"],
        "abi_boundary": ["*.cfunc", "cython.*", "*.ccall"],
        "restricted_interface": ["type_check_only", "*.type_check_only"],
        "test_harness": ["pytest.fixture", "pytest.mark.*", "fixture", "*.fixture"],
        "framework_application_root": [
            "*.command",
            "*.route",
            "*.get",
            "*.post",
            "*.put",
            "*.patch",
            "*.delete",
            "*.websocket",
            "*.callback",
            "*.task",
            "shared_task",
            "*.on_event",
            "*.exception_handler",
            "*.hookimpl",
        ],
    }


def _default_base_class_markers() -> Dict[str, List[str]]:
    return {
        "persistence": ["*Model", "Base", "*.Base", "DeclarativeBase", "*.DeclarativeBase"],
        "ui_application_root": ["App", "*.App", "QApplication", "*.QApplication", "QMainWindow", "*.QMainWindow"],
        "framework_application_root": ["AppConfig", "*.AppConfig", "BaseCommand", "*.BaseCommand"],
        "test_harness": ["TestCase", "*.TestCase"],
    }


@dataclass
class MarkerConfig:
    """Glob patterns the Python front-end maps onto marker categories."""
    decorators: Dict[str, List[str]] = field(default_factory=_default_decorator_markers)
    base_classes: Dict[str, List[str]] = field(default_factory=_default_base_class_markers)


@dataclass
class ClearConfig:
    exclude: List[str] = field(
        default_factory=lambda: ["tests/**", "**/tests/**", "**/test_*.py", "**/*_test.py"]
    )
    check_public_api: bool = True
    max_auto_select_risk: int = 20
    line_tolerance: int = 3
    entry_points: EntryPointsConfig = field(default_factory=EntryPointsConfig)
    risk_scoring: RiskScoringConfig = field(default_factory=RiskScoringConfig)
    protections: ProtectionsConfig = field(default_factory=ProtectionsConfig)
    testing: TestingConfig = field(default_factory=TestingConfig)
    git: GitConfig = field(default_factory=GitConfig)
    markers: MarkerConfig = field(default_factory=MarkerConfig)
    source: Optional[str] = None


_SECTIONS = {
    "entry_points": EntryPointsConfig,
    "risk_scoring": RiskScoringConfig,
    "protections": ProtectionsConfig,
    "testing": TestingConfig,
    "git": GitConfig,
    "markers": MarkerConfig,
}


def _build_section(cls: type, data: Dict[str, Any], section: str) -> Any:
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        logger.warning("Ignoring unknown keys in [%s]: %s", section, ", ".join(unknown))
    kwargs = {key: value for key, value in data.items() if key in known}
    if cls is MarkerConfig:
        defaults = MarkerConfig()
        kwargs = {
            "decorators": {**defaults.decorators, **kwargs.get("decorators", {})},
            "base_classes": {**defaults.base_classes, **kwargs.get("base_classes", {})},
        }
    return cls(**kwargs)


def config_from_dict(data: Dict[str, Any]) -> ClearConfig:
    """Build a :class:`ClearConfig` from parsed TOML data.

    Raises:
        TypeError, ValueError: if a section has the wrong shape.
    """
    analysis = data.get("analysis", {})
    if not isinstance(analysis, dict):
        raise TypeError("[analysis] must be a table")
    kwargs: Dict[str, Any] = {}
    for key in ("exclude", "check_public_api", "max_auto_select_risk", "line_tolerance"):
        if key in analysis:
            kwargs[key] = analysis[key]
    for section, cls in _SECTIONS.items():
        raw = data.get(section)
        if raw is None:
            continue
        if not isinstance(raw, dict):
            raise TypeError(f"[{section}] must be a table")
        kwargs[section] = _build_section(cls, raw, section)
    config = ClearConfig(**kwargs)
    if not 0 <= config.max_auto_select_risk <= 100:
        raise ValueError("max_auto_select_risk must be between 0 and 100")
    if config.line_tolerance < 1:
        raise ValueError("line_tolerance must be at least 1")
    return config


def config_to_dict(config: ClearConfig) -> Dict[str, Any]:
    """Serialize a config into the TOML layout read by :func:`load_config`."""
    data: Dict[str, Any] = {
        "analysis": {
            "exclude": list(config.exclude),
            "check_public_api": config.check_public_api,
            "max_auto_select_risk": config.max_auto_select_risk,
            "line_tolerance": config.line_tolerance,
        }
    }
    for section in _SECTIONS:
        data[section] = asdict(getattr(config, section))
    return data


def load_config(path: Optional[Path] = None) -> ClearConfig:
    """Load configuration from TOML file.

    Args:
        path: Config file path. Defaults to ``.codeclear.toml`` in the
            current directory.

    Returns:
        The parsed configuration, or the defaults if the file is missing,
        unreadable or invalid.
    """
    config_path = Path(path) if path is not None else Path.cwd() / CONFIG_FILENAME
    if not config_path.exists():
        logger.info("No config file at %s, using defaults", config_path)
        return ClearConfig()

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = toml.load(f)
        config = config_from_dict(data)
    except (OSError, toml.TomlDecodeError, TypeError, ValueError) as exc:
        logger.warning("Could not load config %s (%s); using defaults", config_path, exc)
        return ClearConfig()

    config.source = str(config_path)
    return config


def save_config(config: ClearConfig, path: Path) -> Path:
    """Write ``config`` to ``path`` as TOML and return the path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        toml.dump(config_to_dict(config), f)
    return path
