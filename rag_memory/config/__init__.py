from .settings import MemorySettings, load_settings

__all__ = ["MemorySettings", "load_settings"]
