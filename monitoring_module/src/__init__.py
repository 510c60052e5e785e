"""
Monitoring Module - Real-time bias monitoring for hiring processes.

Provides:
- BiasMonitoringService: Evaluate process batches, raise alerts, audit results
- create_monitoring_engine: Wire the service, scheduler and event consumer
- AlertStore / AlertNotifier: Alert lifecycle and routing
- ThresholdRegistry: Versioned monitoring thresholds

Quick Start:
    from monitoring_module import create_monitoring_engine

    engine = create_monitoring_engine()
    result = await engine.service.monitor_process("P-1", "hiring_decision", batch)
    if result.compliance_status != "compliant":
        print(result.violations)
"""

from monitoring_module.src.alerting import (
    AlertNotifier,
    AlertSeverity,
    AlertStatus,
    AlertStore,
    BiasAlert,
)
from monitoring_module.src.audit_trail import (
    AdministrativeEvent,
    AuditTrailEntry,
    AuditTrailStore,
)
from monitoring_module.src.bias_monitor import BiasMonitoringService
from monitoring_module.src.cache import TTLCache
from monitoring_module.src.config_loader import ConfigLoader, MonitoringConfig, load_config
from monitoring_module.src.dashboard import DashboardData, build_dashboard_data
from monitoring_module.src.engine import MonitoringEngine, create_monitoring_engine
from monitoring_module.src.events import EventBus, MonitoringEventConsumer, ProcessCompletedEvent
from monitoring_module.src.exceptions import (
    AlertNotFoundError,
    AlertStateError,
    InvalidTimeRangeError,
    MonitoringError,
    PersistenceError,
    UnsupportedProcessTypeError,
    UnsupportedReportTypeError,
)
from monitoring_module.src.extraction import ProcessBatch, extract_subjects
from monitoring_module.src.report_generator import BiasReport, generate_report, save_report
from monitoring_module.src.scheduler import MonitoringScheduler
from monitoring_module.src.thresholds import ThresholdConfig, ThresholdRegistry

__all__ = [
    # Orchestration
    'BiasMonitoringService',
    'MonitoringEngine',
    'create_monitoring_engine',
    'MonitoringScheduler',
    'EventBus',
    'MonitoringEventConsumer',
    'ProcessCompletedEvent',
    # Alerts and audit
    'AlertNotifier',
    'AlertSeverity',
    'AlertStatus',
    'AlertStore',
    'BiasAlert',
    'AdministrativeEvent',
    'AuditTrailEntry',
    'AuditTrailStore',
    # Configuration
    'ConfigLoader',
    'MonitoringConfig',
    'load_config',
    'ThresholdConfig',
    'ThresholdRegistry',
    'TTLCache',
    # Read side
    'DashboardData',
    'build_dashboard_data',
    'BiasReport',
    'generate_report',
    'save_report',
    # Extraction
    'ProcessBatch',
    'extract_subjects',
    # Errors
    'MonitoringError',
    'PersistenceError',
    'AlertStateError',
    'AlertNotFoundError',
    'UnsupportedProcessTypeError',
    'UnsupportedReportTypeError',
    'InvalidTimeRangeError',
]
