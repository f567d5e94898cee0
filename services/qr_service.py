import io
import uuid
import qrcode


def generate_qr_code(purchase_id):
    """QR 코드 문자열: GC-<8자리>-<구매ID>"""
    return f"GC-{uuid.uuid4().hex[:8].upper()}-{purchase_id}"


def extract_purchase_id(qr_code):
    # 마지막 '-' 뒤가 구매 ID
    parts = (qr_code or "").strip().split("-")
    return parts[-1] or qr_code


def build_qr_png(data, box_size=10, border=4):
    """QR 이미지를 PNG 바이트로 반환"""
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_H,  # 손상 복구율 높음
        box_size=box_size,
        border=border,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()
