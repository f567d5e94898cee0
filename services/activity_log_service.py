from datetime import datetime
from flask import current_app, has_request_context, request
from sqlalchemy import func, or_
from models import db, ActivityLogs
from services.export_service import parse_date_param

CATEGORIES = ["AUTH", "USER", "MERCHANT", "GIFT_CARD", "PURCHASE", "REDEMPTION", "SYSTEM"]
SEVERITIES = ["INFO", "WARNING", "ERROR", "CRITICAL"]


def log_activity(action, category, description, actor=None, resource_type=None, resource_id=None,
                 metadata=None, severity="INFO", merchant_id=None):
    """
    활동 로그 기록 (커밋은 호출자 트랜잭션에 맡김)
    """
    entry = ActivityLogs(
        actor_id=actor.id if actor else None,
        actor_type=actor.role if actor else "SYSTEM",
        action=action,
        category=category,
        description=description,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        severity=severity,
        merchant_id=merchant_id,
    )
    entry.meta = metadata
    if has_request_context():
        entry.ip_address = request.headers.get("X-Forwarded-For", request.remote_addr)
        entry.user_agent = (request.user_agent.string or "")[:255]
    db.session.add(entry)
    current_app.logger.info(f"[ACTIVITY] {category}/{action} {description}")
    return entry


def _filtered_query(filters):
    query = ActivityLogs.query
    if filters.get("category"):
        query = query.filter(ActivityLogs.category == filters["category"])
    if filters.get("severity"):
        query = query.filter(ActivityLogs.severity == filters["severity"])
    for key, column in (("merchantId", ActivityLogs.merchant_id), ("actorId", ActivityLogs.actor_id)):
        if filters.get(key):
            query = query.filter(column == filters[key])
    if filters.get("resourceType"):
        query = query.filter(ActivityLogs.resource_type == filters["resourceType"])
    if filters.get("resourceId"):
        query = query.filter(ActivityLogs.resource_id == str(filters["resourceId"]))
    start = parse_date_param(filters.get("startDate"))
    end = parse_date_param(filters.get("endDate"), end_of_day=True)
    if start:
        query = query.filter(ActivityLogs.created_at >= start)
    if end:
        query = query.filter(ActivityLogs.created_at <= end)
    if filters.get("search"):
        like = f"%{filters['search']}%"
        query = query.filter(or_(ActivityLogs.description.ilike(like), ActivityLogs.action.ilike(like)))
    return query


def list_logs(filters, page=1, limit=20):
    pagination = _filtered_query(filters).order_by(ActivityLogs.created_at.desc(), ActivityLogs.id.desc()) \
        .paginate(page=page, per_page=limit, error_out=False)
    return {
        "success": True,
        "data": {
            "logs": [log.to_dict() for log in pagination.items],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": pagination.total,
                "totalPages": pagination.pages,
            },
        },
    }


def get_stats(merchant_id=None):
    base = ActivityLogs.query
    if merchant_id:
        base = base.filter(ActivityLogs.merchant_id == merchant_id)

    today_start = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)
    today = base.filter(ActivityLogs.created_at >= today_start).count()

    by_category = {c: 0 for c in CATEGORIES}
    for category, count in base.with_entities(ActivityLogs.category, func.count(ActivityLogs.id)) \
            .group_by(ActivityLogs.category).all():
        by_category[category] = count

    by_severity = {s: 0 for s in SEVERITIES}
    for severity, count in base.with_entities(ActivityLogs.severity, func.count(ActivityLogs.id)) \
            .group_by(ActivityLogs.severity).all():
        by_severity[severity] = count

    recent_errors = base.filter(ActivityLogs.severity.in_(["ERROR", "CRITICAL"])) \
        .order_by(ActivityLogs.created_at.desc()).limit(5).all()

    return {
        "success": True,
        "data": {
            "today": today,
            "byCategory": by_category,
            "bySeverity": by_severity,
            "recentErrors": [log.to_dict() for log in recent_errors],
        },
    }


def get_timeline(resource_type, resource_id):
    logs = ActivityLogs.query.filter_by(resource_type=resource_type, resource_id=str(resource_id)) \
        .order_by(ActivityLogs.created_at.asc(), ActivityLogs.id.asc()).all()
    return {"success": True, "data": {"logs": [log.to_dict() for log in logs]}}
