"""Alert engine services.

- threshold_store.py / threshold_resolver.py (profiles and effective thresholds per hive)
- anomaly_detector.py (sample vs. profile -> findings with severity)
- alert_ledger.py (alert storage; one active alert per hive and type)
- alert_lifecycle.py (dedup, creation, resolution, batch sweeps)
- check_scheduler.py (on-demand, scheduled and periodic checks)
"""

# Import side-effects are intentionally avoided here; modules are imported by routers/services as needed.
