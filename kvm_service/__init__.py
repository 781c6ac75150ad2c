"""
kvm_service/__init__.py
"""
from .screen_config import ScreenConfig, get_screen_config
from .resolution import select_optimal_resolution
from .resolution_monitor import ResolutionMonitor
from .server import KVMService

__all__ = [
    "ScreenConfig", "get_screen_config", "select_optimal_resolution",
    "ResolutionMonitor", "KVMService",
]
