"""
Prometheus metrics for the configuration service
"""

from prometheus_client import Counter, Gauge, Histogram

config_changes = Counter(
    'layered_config_changes_total',
    'Committed configuration changes',
    ['source']
)
config_validation_failures = Counter(
    'layered_config_validation_failures_total',
    'Configuration validation failures',
    ['kind']
)
config_decrypt_failures = Counter(
    'layered_config_decrypt_failures_total',
    'Sensitive values that could not be decrypted on read'
)
config_overlay_errors = Counter(
    'layered_config_overlay_errors_total',
    'Overlay sources skipped because they could not be read'
)
config_initialize_duration = Histogram(
    'layered_config_initialize_duration_seconds',
    'Configuration initialization duration'
)
config_ready = Gauge(
    'layered_config_ready',
    'Configuration service readiness (1=ready, 0=not ready)'
)
