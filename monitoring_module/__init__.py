"""Monitoring Module"""
from monitoring_module.src.bias_monitor import BiasMonitoringService
from monitoring_module.src.engine import create_monitoring_engine
__all__ = ['BiasMonitoringService', 'create_monitoring_engine']
