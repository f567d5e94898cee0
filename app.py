import os
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from config import Config, APP_ROOT
from extensions import limiter
from models import db

# 라우트 모듈
from routes.auth import auth_bp
from routes.giftcards import giftcards_bp
from routes.purchases import purchases_bp
from routes.merchants import merchants_bp
from routes.admin import admin_bp
from routes.users import users_bp
from routes.notifications import notifications_bp
from routes.staff import staff_bp

ERROR_MESSAGES = {
    400: "Bad request",
    401: "Authentication required",
    403: "You do not have permission to perform this action",
    404: "Resource not found",
    405: "Method not allowed",
    413: "File is too large (max 5MB)",
    429: "Too many requests. Please try again later.",
    500: "Internal server error",
}


def register_error_handlers(app):
    def handle_http_error(e):
        message = ERROR_MESSAGES.get(e.code, e.description)
        if e.code == 429:
            app.logger.warning(f"Rate limit exceeded: {e.description}")
        return jsonify({"success": False, "message": message}), e.code

    for code in ERROR_MESSAGES:
        if code != 500:
            app.register_error_handler(code, handle_http_error)

    @app.errorhandler(500)
    def handle_server_error(e):
        app.logger.error(f"Unhandled error: {getattr(e, 'original_exception', e)}")
        return jsonify({"success": False, "message": ERROR_MESSAGES[500]}), 500

    @app.errorhandler(HTTPException)
    def handle_other_http_error(e):
        return jsonify({"success": False, "message": e.description}), e.code


def create_app(test_config=None):
    app = Flask(__name__, instance_path=os.path.join(APP_ROOT, 'instance'))
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # ★ [보안] 세션 서명 키 / 개인정보 암호화 키는 환경변수 필수
    if not app.config.get('TESTING'):
        if not app.config.get('SECRET_KEY'):
            raise RuntimeError("FLASK_SECRET_KEY environment variable is not set")
        if not app.config.get('FERNET_KEY'):
            raise RuntimeError("FERNET_KEY environment variable is not set")

    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))
    os.makedirs(app.instance_path, exist_ok=True)
    os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)

    db.init_app(app)
    limiter.init_app(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(giftcards_bp)
    app.register_blueprint(purchases_bp)
    app.register_blueprint(merchants_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(staff_bp)

    register_error_handlers(app)

    @app.route("/health")
    def health():
        return jsonify({"success": True, "message": "ok"})

    with app.app_context():
        db.create_all()

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)), debug=os.environ.get("FLASK_DEBUG") == "1")
