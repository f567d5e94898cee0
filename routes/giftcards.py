from flask import Blueprint, g, request
from routes.common import respond, json_body, page_args
from services import giftcard_service
from services.auth_service import token_required, optional_user
from services.export_service import export_gift_cards

giftcards_bp = Blueprint('giftcards', __name__, url_prefix='/api/gift-cards')


@giftcards_bp.route("", methods=["GET"])
@token_required('MERCHANT')
def list_cards():
    page, limit = page_args()
    return respond(giftcard_service.list_merchant_cards(
        g.current_user,
        search=request.args.get("search", "").strip() or None,
        sort_by=request.args.get("sortBy", "createdAt"),
        sort_order=request.args.get("sortOrder", "desc"),
        page=page,
        limit=limit,
    ))


@giftcards_bp.route("", methods=["POST"])
@token_required('MERCHANT')
def create_card():
    return respond(giftcard_service.create_gift_card(g.current_user, json_body()))


@giftcards_bp.route("/<int:card_id>", methods=["GET"])
def get_card(card_id):
    return respond(giftcard_service.get_gift_card(card_id, optional_user()))


@giftcards_bp.route("/<int:card_id>", methods=["PUT"])
@token_required('MERCHANT', 'ADMIN')
def update_card(card_id):
    return respond(giftcard_service.update_gift_card(g.current_user, card_id, json_body()))


@giftcards_bp.route("/<int:card_id>", methods=["DELETE"])
@token_required('MERCHANT', 'ADMIN')
def delete_card(card_id):
    return respond(giftcard_service.delete_gift_card(g.current_user, card_id))


@giftcards_bp.route("/public/active")
def public_active():
    return respond(giftcard_service.public_active_cards())


@giftcards_bp.route("/merchant/<int:merchant_id>")
def merchant_cards(merchant_id):
    return respond(giftcard_service.public_merchant_cards(merchant_id))


# --- 카드 디자인 설정 ---

@giftcards_bp.route("/settings")
@token_required('MERCHANT')
def get_settings():
    return respond(giftcard_service.get_settings(g.current_user))


@giftcards_bp.route("/card/settings", methods=["POST", "PUT"])
@token_required('MERCHANT')
def save_settings():
    return respond(giftcard_service.save_settings(g.current_user, json_body()))


@giftcards_bp.route("/export")
@token_required('MERCHANT')
def export():
    query = giftcard_service.merchant_cards_query(
        g.current_user.id,
        search=request.args.get("search", "").strip() or None,
        sort_by=request.args.get("sortBy", "createdAt"),
        sort_order=request.args.get("sortOrder", "desc"),
    )
    return export_gift_cards(query.all())
