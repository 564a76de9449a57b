# API routes
from catalogwatch.api.routes import health
from catalogwatch.api.routes import cron
from catalogwatch.api.routes import webhooks_shopify
from catalogwatch.api.routes import monitoring
from catalogwatch.api.routes import rules
from catalogwatch.api.routes import schedule
from catalogwatch.api.routes import billing

__all__ = ["health", "cron", "webhooks_shopify", "monitoring", "rules", "schedule", "billing"]
