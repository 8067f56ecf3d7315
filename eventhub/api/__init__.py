# API Routes
from eventhub.api.health import router as health_router
from eventhub.api.memberships import router as memberships_router
from eventhub.api.admin_memberships import router as admin_memberships_router
from eventhub.api.transactions import router as transactions_router
from eventhub.api.events import router as events_router
from eventhub.api.users import router as users_router
from eventhub.api.reports import router as reports_router

__all__ = [
    "health_router",
    "memberships_router",
    "admin_memberships_router",
    "transactions_router",
    "events_router",
    "users_router",
    "reports_router",
]
