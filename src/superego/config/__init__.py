from superego.config.settings import ChatConfig, Settings, get_settings, load_settings

__all__ = ["ChatConfig", "Settings", "get_settings", "load_settings"]
