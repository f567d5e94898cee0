from flask import Blueprint, g, request
from extensions import limiter
from routes.common import respond, json_body
from services import landing_service, giftcard_service
from services.auth_service import token_required

users_bp = Blueprint('users', __name__, url_prefix='/api/users')


@users_bp.route("/landing-page", methods=["GET"])
def landing_page():
    return respond(landing_service.get_landing())


@users_bp.route("/landing-page", methods=["PATCH"])
@token_required('ADMIN')
def update_landing_page():
    return respond(landing_service.update_landing(g.current_user, json_body()))


@users_bp.route("/landing-page/template/<section>")
@token_required('ADMIN')
def landing_section_template(section):
    return respond(landing_service.section_template(section))


@users_bp.route("/contact-us", methods=["POST"])
@limiter.limit("5 per minute")  # [보안] 스팸 방지
def contact_us():
    return respond(landing_service.submit_contact(json_body()))


@users_bp.route("/contact-us", methods=["GET"])
@token_required('ADMIN')
def contact_messages():
    return respond(landing_service.list_contacts(request.args.get("order", "desc")))


@users_bp.route("/notify-merchant", methods=["POST"])
@limiter.limit("10 per hour")
def notify_merchant():
    return respond(giftcard_service.notify_merchant(json_body()))
