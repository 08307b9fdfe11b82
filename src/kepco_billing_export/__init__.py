from .models import BillingRecord, UsageWindow

__all__ = ["BillingRecord", "UsageWindow"]
__version__ = "0.1.0"
