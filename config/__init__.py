from .config_loader import ConfigLoader, VoiceSettings

__all__ = ["ConfigLoader", "VoiceSettings"]
