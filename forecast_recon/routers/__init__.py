# forecast_recon/routers/__init__.py

from forecast_recon.routers import health
from forecast_recon.routers import reconcile
from forecast_recon.routers import gl_entries
from forecast_recon.routers import order_forecasts

__all__ = ["health", "reconcile", "gl_entries", "order_forecasts"]
