import os
import uuid
from flask import current_app
from PIL import Image, UnidentifiedImageError

ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'svg'}
ALLOWED_MIMETYPES = {'image/png', 'image/jpeg', 'image/jpg', 'image/svg+xml'}
MAX_FILE_SIZE_MB = 5


def _extension(filename):
    if not filename or '.' not in filename:
        return None
    return filename.rsplit('.', 1)[1].lower()


def validate_image_file(file, max_size_mb=MAX_FILE_SIZE_MB):
    """
    업로드 이미지 검증 (형식 / 크기 / 무결성).
    반환값: 오류 메시지 또는 None
    """
    ext = _extension(file.filename)
    if ext not in ALLOWED_EXTENSIONS or (file.mimetype and file.mimetype not in ALLOWED_MIMETYPES):
        return "Please upload a valid image file (PNG, JPG, or SVG)"

    file.stream.seek(0, os.SEEK_END)
    size = file.stream.tell()
    file.stream.seek(0)
    if size > max_size_mb * 1024 * 1024:
        return f"File size should not exceed {max_size_mb}MB"

    if ext == 'svg':
        head = file.stream.read(2048).decode('utf-8', errors='ignore')
        file.stream.seek(0)
        if '<svg' not in head:
            return "Invalid image file"
        return None

    # [보안] 이미지 무결성 검사 (Pillow)
    try:
        with Image.open(file.stream) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError):
        return "Invalid image file"
    finally:
        file.stream.seek(0)
    return None


def save_upload(file, prefix):
    """검증된 파일을 UPLOAD_FOLDER에 저장하고 상대 경로 반환"""
    folder = current_app.config["UPLOAD_FOLDER"]
    os.makedirs(folder, exist_ok=True)
    filename = f"{prefix}_{uuid.uuid4().hex}.{_extension(file.filename)}"
    file.save(os.path.join(folder, filename))
    current_app.logger.info(f"Upload saved: {filename}")
    return f"uploads/{filename}"


def remove_upload(path):
    """save_upload 로 저장한 파일 삭제 (DB 반영 실패 시)"""
    filename = os.path.basename(path)
    full_path = os.path.join(current_app.config["UPLOAD_FOLDER"], filename)
    if os.path.exists(full_path):
        os.remove(full_path)
        current_app.logger.info(f"Upload removed: {filename}")
