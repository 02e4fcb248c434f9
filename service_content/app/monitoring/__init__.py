"""
In-process performance monitoring.
"""

from .performance_monitor import PerformanceMetric, PerformanceMonitor, PerformanceStats

__all__ = ["PerformanceMetric", "PerformanceMonitor", "PerformanceStats"]
