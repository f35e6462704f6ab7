"""
Slashwatch Package

Watches a proof-of-stake slashing protocol and reports rounds that can
still be vetoed.

Core imports are lazily loaded so that importing the package does not pull
in the HTTP stack. For direct module access, import from submodules:

    from slashwatch.detector import SlashingDetector
    from slashwatch.monitor import SlashingMonitor
    from slashwatch.config import load_config
"""

__version__ = "0.1.0"


# Lazy imports to avoid loading everything at package import
def __getattr__(name):
    """Lazy module loading."""
    if name == 'SlashingMonitor':
        from .monitor import SlashingMonitor
        return SlashingMonitor
    elif name == 'SlashingDetector':
        from .detector import SlashingDetector
        return SlashingDetector
    elif name == 'load_config':
        from .config import load_config
        return load_config
    raise AttributeError(f"module 'slashwatch' has no attribute {name!r}")

__all__ = ['SlashingMonitor', 'SlashingDetector', 'load_config', '__version__']
