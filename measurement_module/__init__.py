"""Measurement Module"""
from measurement_module.src.fairness_calculator import FairnessMetricsCalculator, calculate_fairness_metrics
__all__ = ['FairnessMetricsCalculator', 'calculate_fairness_metrics']
