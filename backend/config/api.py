"""
Django Ninja API configuration.
"""

from django.http import HttpRequest
from ninja import NinjaAPI

from apps.billing.api import router as billing_router
from apps.notifications.api import router as notifications_router

api = NinjaAPI(
    title="Engagements API",
    version="1.0.0",
    description="Engagement notifications and Stripe payments.",
    openapi_extra={
        "info": {
            "contact": {"name": "API Support"},
        },
        "tags": [
            {
                "name": "notifications",
                "description": "Notification feed recorded for engagement and payment events",
            },
            {
                "name": "billing",
                "description": "Payment methods and payment history from Stripe",
            },
            {
                "name": "health",
                "description": "Service health and readiness checks",
            },
        ],
    },
)

# Register routers
api.add_router("/notifications", notifications_router)
api.add_router("/billing", billing_router)


@api.get("/health", tags=["health"], operation_id="healthCheck", summary="Health check")
def health_check(request: HttpRequest) -> dict:
    """Health check endpoint for load balancer."""
    return {"status": "ok"}
