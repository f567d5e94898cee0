import os
from cryptography.fernet import Fernet, InvalidToken
from flask import current_app

import bcrypt

# 경로 설정
APP_ROOT = os.path.dirname(os.path.abspath(__file__))


def _int_env(name, default):
    value = os.environ.get(name)
    return int(value) if value else default


class Config:
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY")
    FERNET_KEY = os.environ.get("FERNET_KEY")

    database_url = os.environ.get('DATABASE_URL')
    if database_url and database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)

    SQLALCHEMY_DATABASE_URI = database_url or f'sqlite:///{os.path.join(APP_ROOT, "instance", "giftcards.db")}'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # 파일 업로드 제한 (5MB)
    MAX_CONTENT_LENGTH = 5 * 1024 * 1024
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", os.path.join(APP_ROOT, "instance", "uploads"))

    # 토큰 유효시간 (초)
    ACCESS_TOKEN_MAX_AGE = _int_env("ACCESS_TOKEN_MAX_AGE", 60 * 60)
    REFRESH_TOKEN_MAX_AGE = _int_env("REFRESH_TOKEN_MAX_AGE", 7 * 24 * 60 * 60)
    RESET_TOKEN_MAX_AGE = _int_env("RESET_TOKEN_MAX_AGE", 15 * 60)

    # 사용 OTP 정책
    OTP_LENGTH = 6
    OTP_RESEND_SECONDS = _int_env("OTP_RESEND_SECONDS", 60)
    OTP_EXPIRY_MINUTES = _int_env("OTP_EXPIRY_MINUTES", 10)
    OTP_MAX_ATTEMPTS = _int_env("OTP_MAX_ATTEMPTS", 5)
    OTP_VERIFIED_WINDOW_MINUTES = _int_env("OTP_VERIFIED_WINDOW_MINUTES", 10)

    # 가맹점별 기프트카드 발행 한도
    GIFT_CARD_LIMIT = _int_env("GIFT_CARD_LIMIT", 10)

    BCRYPT_LOG_ROUNDS = _int_env("BCRYPT_LOG_ROUNDS", 12)

    RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "memory://")

    # 초기 관리자 계정 (Bcrypt 해시, 예: $2b$12$...)
    ADMIN_EMAIL = os.environ.get("ADMIN_EMAIL", "admin@giftcards.local")
    ADMIN_PASSWORD_BCRYPT = os.environ.get("ADMIN_PASSWORD_BCRYPT")

    PUBLIC_BASE_URL = os.environ.get("PUBLIC_BASE_URL", "http://127.0.0.1:5000")


def _cipher():
    return Fernet(current_app.config["FERNET_KEY"])


def encrypt_data(data):
    if not data: return data
    return _cipher().encrypt(data.encode()).decode()


def decrypt_data(data):
    if not data: return data
    try:
        return _cipher().decrypt(data.encode()).decode()
    except InvalidToken:
        return data  # 암호화 전 평문일 경우 그대로 반환


def hash_secret(value):
    rounds = current_app.config.get("BCRYPT_LOG_ROUNDS", 12)
    return bcrypt.hashpw(value.encode('utf-8'), bcrypt.gensalt(rounds=rounds)).decode('utf-8')


def check_secret(value, known_hash):
    """입력값과 Bcrypt 해시를 비교 검증"""
    if not value or not known_hash:
        return False
    return bcrypt.checkpw(value.encode('utf-8'), known_hash.encode('utf-8'))
