from .config import Settings, settings
from .runtime_config import RuntimeConfig, load_runtime_config, runtime_config

__all__ = ["Settings", "settings", "RuntimeConfig", "load_runtime_config", "runtime_config"]
