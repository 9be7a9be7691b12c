from .fleet_metrics import FleetMetrics, compute_fleet_metrics

__all__ = ["FleetMetrics", "compute_fleet_metrics"]
