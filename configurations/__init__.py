from .settings import Settings, load_settings
