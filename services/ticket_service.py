from datetime import datetime
from sqlalchemy import or_
from models import db, Users, SupportTickets, MerchantProfiles
from services.notification_service import create_notification, notify_admins
from services.activity_log_service import log_activity

TICKET_STATUSES = ["OPEN", "IN_PROGRESS", "CLOSE"]

# 상태 전이: OPEN -> IN_PROGRESS -> CLOSE (CLOSE 는 종료 상태)
ALLOWED_TRANSITIONS = {
    "OPEN": {"IN_PROGRESS", "CLOSE"},
    "IN_PROGRESS": {"IN_PROGRESS", "CLOSE"},
    "CLOSE": set(),
}


def create_ticket(user, data):
    title = (data.get("title") or "").strip()
    query = (data.get("query") or "").strip()
    if not title or not query:
        return {"success": False, "message": "Title and query are required"}
    if len(title) > 255:
        return {"success": False, "message": "Title must be at most 255 characters"}

    ticket = SupportTickets(merchant_id=user.id, title=title, query_text=query, status='OPEN')
    db.session.add(ticket)
    db.session.flush()
    notify_admins("SUPPORT_TICKET", "New support ticket", f"{user.name}: {title}",
                  "SUPPORT_TICKET", ticket.id, actor=user)
    log_activity("SUPPORT_TICKET_CREATED", "MERCHANT", f"Ticket #{ticket.id} opened: {title}", actor=user,
                 resource_type="SUPPORT_TICKET", resource_id=ticket.id, merchant_id=user.id)
    db.session.commit()
    return {"success": True, "message": "Support ticket created successfully", "data": ticket.to_dict(),
            "status": 201}


def list_tickets(user, search=None, status=None, order="desc", page=1, limit=10):
    query = SupportTickets.query
    if user.role != 'ADMIN':
        query = query.filter(SupportTickets.merchant_id == user.id)
    if status:
        query = query.filter(SupportTickets.status == status)
    if search:
        like = f"%{search}%"
        query = query.join(Users, SupportTickets.merchant_id == Users.id) \
            .outerjoin(MerchantProfiles, MerchantProfiles.user_id == Users.id) \
            .filter(or_(SupportTickets.title.ilike(like), SupportTickets.query_text.ilike(like),
                        Users.name.ilike(like), Users.email.ilike(like),
                        MerchantProfiles.business_name.ilike(like)))
    column = SupportTickets.created_at
    query = query.order_by(column.asc() if order == "asc" else column.desc(), SupportTickets.id.desc())
    pagination = query.paginate(page=page, per_page=limit, error_out=False)
    return {
        "success": True,
        "data": {
            "tickets": [t.to_dict() for t in pagination.items],
            "pagination": {"total": pagination.total, "page": page, "limit": limit,
                           "totalPages": pagination.pages},
        },
    }


def get_ticket(user, ticket_id):
    ticket = db.session.get(SupportTickets, ticket_id)
    if not ticket or (user.role != 'ADMIN' and ticket.merchant_id != user.id):
        return {"success": False, "message": "Ticket not found", "status": 404}
    return {"success": True, "data": ticket.to_dict()}


def update_ticket(admin, ticket_id, data):
    """
    관리자 답변 등록 + 상태 변경
    """
    ticket = db.session.get(SupportTickets, ticket_id)
    if not ticket:
        return {"success": False, "message": "Ticket not found", "status": 404}

    status = data.get("status")
    response = (data.get("response") or "").strip()
    if status not in TICKET_STATUSES:
        return {"success": False, "message": f"Status must be one of {', '.join(TICKET_STATUSES)}"}
    if not response:
        return {"success": False, "message": "Response is required"}
    if status not in ALLOWED_TRANSITIONS[ticket.status]:
        return {"success": False, "message": f"Cannot change ticket status from {ticket.status} to {status}",
                "status": 409}

    previous = ticket.status
    ticket.status = status
    ticket.response = response
    ticket.responded_at = datetime.now()

    if ticket.merchant:
        create_notification(ticket.merchant, "SUPPORT_TICKET", f"Support ticket updated: {ticket.title}",
                            f"Status: {status}. {response}", "SUPPORT_TICKET", ticket.id, actor=admin)
    log_activity("SUPPORT_TICKET_UPDATED", "MERCHANT", f"Ticket #{ticket.id} {previous} -> {status}",
                 actor=admin, resource_type="SUPPORT_TICKET", resource_id=ticket.id,
                 merchant_id=ticket.merchant_id)
    db.session.commit()
    return {"success": True, "message": "Ticket updated successfully", "data": ticket.to_dict()}
