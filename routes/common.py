from flask import jsonify, request


def respond(result):
    """서비스 결과 dict -> JSON 응답. status 없으면 성공 200 / 실패 400"""
    status = result.pop("status", None) or (200 if result.get("success") else 400)
    return jsonify(result), status


def json_body():
    """JSON 객체만 허용. 배열 등 다른 형식은 빈 dict"""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def form_or_json():
    """multipart 폼(파일 업로드)과 JSON 모두 허용"""
    if request.is_json:
        return json_body()
    return request.form.to_dict()


def page_args(default_limit=10):
    page = max(request.args.get("page", 1, type=int), 1)
    limit = min(max(request.args.get("limit", default_limit, type=int), 1), 100)
    return page, limit


def as_bool(value):
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def as_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
