"""
app/api/routers package marker.
"""

from app.api.routers.churn_risk_router import router as churn_risk_router

__all__ = [
    "churn_risk_router",
]
