from .main import app, app_main, keys, main, serve, version_callback


__all__ = [
    "app",
    "app_main",
    "keys",
    "main",
    "serve",
    "version_callback",
]
