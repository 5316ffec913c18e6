from app.models.waf import WAFRule, RequestLog, BlockedIdentifier, StatsSnapshot
