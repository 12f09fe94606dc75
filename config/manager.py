from pathlib import Path
from typing import Dict, Any, Optional, List, Callable
import logging
import os


class EnvironmentManager:
    """
    Environment manager holding the typed settings used by csvlab components.

    Values come from the defaults below, then a .env file, then the OS
    environment, then any registered providers.
    """

    _instance = None

    # List of all settings that are paths
    PATH_SETTINGS = [
        "row_store_path",
    ]

    # Default settings with their types
    DEFAULT_SETTINGS = {
        # Row store settings
        "row_store_backend": ("sqlite", str),
        "row_store_path": (".csvlab/rows.db", str),
        "store_write_chunk_size": (10000, int),
        "scan_chunk_size": (10000, int),
        "scan_progress_interval": (10000, int),
        # Ingest settings
        "ingest_batch_size": (5000, int),
        "ingest_progress_interval": (10000, int),
        "ingest_expected_rows": (1000000, int),
        "ingest_progress_cap": (95.0, float),
        # Sampling and statistics
        "sample_threshold": (100000, int),
        "histogram_bins": (20, int),
        # Duplicate text analysis
        "duplicate_threshold": (10, int),
        "duplicate_max_ids": (100, int),
        # Logging
        "log_level": ("INFO", str),
    }

    # Settings that only take effect when a store is reopened
    RESTART_SETTINGS = ["row_store_backend", "row_store_path"]

    # Paths that are never resolved against the working directory
    SPECIAL_PATHS = [":memory:"]

    # Create mapping dynamically - each setting can be set via its uppercase env var
    ENV_MAPPING = {setting.upper(): setting for setting in DEFAULT_SETTINGS.keys()}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialize()
        return cls._instance

    def _initialize(self):
        """Initialize environment with default values"""
        self.env_variables: Dict[str, str] = {}
        self._providers: List[Callable[[], Dict[str, Any]]] = []
        self.settings: Dict[str, Any] = {}
        self.env_file_path: Optional[Path] = None
        self.logger = logging.getLogger(__name__)

        # Initialize settings with default values
        for key, (default_value, _) in self.DEFAULT_SETTINGS.items():
            self.settings[key] = default_value

        self._load_from_env_file()
        self._resolve_paths()

    def _resolve_paths(self):
        """Resolve path settings to absolute paths relative to the working directory"""
        for key in self.PATH_SETTINGS:
            value = self.settings.get(key)
            if value is None or value in self.SPECIAL_PATHS:
                continue
            p = Path(value).expanduser()
            if not p.is_absolute():
                p = Path.cwd() / p
            self.settings[key] = str(p.resolve())

    def _convert_value(self, value: str, target_type: type) -> Any:
        """Convert string value to target type"""
        if target_type == bool:
            return value.lower() in ("true", "1", "yes", "on")
        return target_type(value)

    def _apply_setting(self, key: str, value: str) -> bool:
        """Apply a raw string value if the key maps to a known setting"""
        if key not in self.ENV_MAPPING:
            return False

        setting_name = self.ENV_MAPPING[key]
        _, target_type = self.DEFAULT_SETTINGS[setting_name]
        try:
            self.settings[setting_name] = self._convert_value(value, target_type)
        except ValueError:
            self.logger.warning(
                f"Ignoring {key}={value!r}: expected {target_type.__name__}"
            )
            return False
        return True

    def _load_from_env_file(self):
        """Find and load variables from a .env file"""
        env_file_paths = [Path.cwd() / ".env"]

        # Try additional common locations - safely handle home directory
        try:
            env_file_paths.append(Path.home() / ".env")
        except (RuntimeError, OSError):
            # Skip home directory if it can't be determined
            pass

        # Load from the first .env file found
        for env_path in env_file_paths:
            if env_path.exists() and env_path.is_file():
                self.logger.debug(f"Loading environment from: {env_path}")
                self._parse_env_file(env_path)
                self.env_file_path = env_path
                return

        self.logger.debug(
            "No .env file found, tried: " + ", ".join(str(p) for p in env_file_paths)
        )

    def _parse_env_file(self, env_file_path: Path):
        """Parse a .env file and load variables into settings"""
        try:
            with open(env_file_path, "r") as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith("#") and "=" in line:
                        key, value = line.split("=", 1)
                        key = key.strip()
                        value = value.strip()

                        # Remove quotes if present
                        if (value.startswith('"') and value.endswith('"')) or (
                            value.startswith("'") and value.endswith("'")
                        ):
                            value = value[1:-1]

                        self.env_variables[key] = value
                        self._apply_setting(key, value)

        except OSError as e:
            self.logger.error(f"Error parsing .env file {env_file_path}: {e}")

    def register_provider(self, provider: Callable[[], Dict[str, Any]]):
        """Register a provider function that returns additional settings"""
        self._providers.append(provider)
        return self

    def load(self):
        """Load all environment information"""
        self._load_from_env_file()

        # Load variables from OS environment
        for key, value in os.environ.items():
            if key in self.ENV_MAPPING:
                self.env_variables[key] = value
                self._apply_setting(key, value)

        # Call all registered providers
        for provider in self._providers:
            try:
                additional_data = provider()
            except Exception as e:
                self.logger.error(f"Error from provider: {e}")
                continue

            if settings := additional_data.get("settings", {}):
                for key, value in settings.items():
                    if key in self.settings:
                        self.settings[key] = value

        self._resolve_paths()
        return self

    def get_setting(self, name: str, default: Any = None) -> Any:
        """Get a setting value by name"""
        return self.settings.get(name, default)

    def get_row_store_path(self) -> str:
        return self.settings["row_store_path"]

    def get_all_configuration(self) -> Dict[str, Any]:
        """Get all configuration settings in a JSON-serializable form"""
        default_settings_serializable = {}
        for key, (default_value, type_class) in self.DEFAULT_SETTINGS.items():
            default_settings_serializable[key] = {
                "default_value": default_value,
                "type": type_class.__name__
            }

        return {
            "settings": dict(self.settings),
            "default_settings": default_settings_serializable,
            "path_settings": list(self.PATH_SETTINGS),
            "env_mapping": dict(self.ENV_MAPPING),
            "env_file": str(self.env_file_path) if self.env_file_path else None,
        }

    def update_configuration(self, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Update configuration settings and return result"""
        try:
            restart_required = False
            updated_settings = []
            unknown_settings = []

            for key, value in updates.get("settings", {}).items():
                if key not in self.DEFAULT_SETTINGS:
                    unknown_settings.append(key)
                    continue

                # Convert value to correct type
                _, target_type = self.DEFAULT_SETTINGS[key]
                if target_type == bool and isinstance(value, str):
                    value = value.lower() in ('true', '1', 'yes', 'on')
                elif target_type in (int, float) and isinstance(value, str):
                    if not value.strip():
                        raise ValueError(f"Empty value for {key}")
                    value = target_type(value)

                self.settings[key] = value
                updated_settings.append(key)

                if key in self.RESTART_SETTINGS:
                    restart_required = True

            self._resolve_paths()

            result = {
                "success": True,
                "updated_settings": updated_settings,
                "restart_required": restart_required,
                "message": f"Updated {len(updated_settings)} settings successfully"
            }
            if unknown_settings:
                result["unknown_settings"] = unknown_settings
            return result

        except (TypeError, ValueError) as e:
            return {
                "success": False,
                "error": str(e),
                "message": f"Failed to update configuration: {str(e)}"
            }

    def reset_setting(self, setting_name: str) -> Dict[str, Any]:
        """Reset a specific setting to its default value"""
        if setting_name not in self.DEFAULT_SETTINGS:
            return {"success": False, "error": f"Unknown setting: {setting_name}"}

        default_value, _ = self.DEFAULT_SETTINGS[setting_name]
        self.settings[setting_name] = default_value
        self._resolve_paths()
        return {"success": True, "message": f"Reset {setting_name} to default value: {default_value}"}


# Create a global instance
env_manager = EnvironmentManager()
