from datetime import datetime
from sqlalchemy import func, or_
from flask import current_app
from models import db, Users, MerchantProfiles, GiftCards, PurchasedGiftCards, Redemptions, SupportTickets
from services.validators import (validate_business_details, validate_bank_details, validate_description,
                                 validate_profile, clean_text)
from services.upload_service import validate_image_file, save_upload, remove_upload
from services.notification_service import create_notification, notify_admins
from services.activity_log_service import log_activity
from services.formatting import business_initials, format_location, profile_status_config, can_edit_merchant

PROFILE_STATUSES = ["INCOMPLETE", "PENDING_VERIFICATION", "VERIFIED", "REJECTED"]

# API 필드명 -> 컬럼명
PROFILE_FIELDS = {
    "businessName": "business_name",
    "businessRegistrationNumber": "business_registration_number",
    "taxId": "tax_id",
    "businessType": "business_type",
    "businessCategory": "business_category",
    "address": "address",
    "city": "city",
    "state": "state",
    "zipCode": "zip_code",
    "country": "country",
    "businessPhone": "business_phone",
    "businessEmail": "business_email",
    "website": "website",
    "bankName": "bank_name",
    "accountNumber": "account_number",
    "accountHolderName": "account_holder_name",
    "ifscCode": "ifsc_code",
    "swiftCode": "swift_code",
    "description": "description",
}

DOCUMENT_FIELDS = {
    "logo": "logo",
    "identityDocument": "identity_document",
    "registrationDocument": "registration_document",
    "taxDocument": "tax_document",
}

PROFILE_SAVE_FAILED = {"success": False, "message": "Profile could not be saved. Please try again.",
                       "status": 500}

STEP_VALIDATORS = {
    1: validate_business_details,
    2: validate_bank_details,
    3: validate_description,
}


def validate_step(step, data):
    validator = STEP_VALIDATORS.get(step)
    if not validator:
        return {"step": "Invalid step"}
    return validator(data)


def _apply_fields(profile, data):
    for key, column in PROFILE_FIELDS.items():
        if key in data:
            value = data.get(key)
            value = value.strip() if isinstance(value, str) else value
            setattr(profile, column, value or None)


def _store_documents(profile, files):
    """
    업로드 파일 전부 검증 후 저장.
    반환값: (오류 메시지 또는 None, 저장된 경로 목록)
    """
    pending = []
    for key, column in DOCUMENT_FIELDS.items():
        file = files.get(key) if files else None
        if not file or not file.filename:
            continue
        error = validate_image_file(file)
        if error:
            return f"{key}: {error}", []
        pending.append((column, file))

    saved = []
    for column, file in pending:
        path = save_upload(file, f"{profile.user_id}_{column}")
        setattr(profile, column, path)
        saved.append(path)
    return None, saved


def _commit_profile(saved):
    """커밋 실패 시 롤백 + 이번 요청에서 저장한 파일 삭제"""
    try:
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        for path in saved:
            remove_upload(path)
        current_app.logger.error(f"Profile save failed: {e}")
        return False
    return True


def complete_profile(user, data, files=None):
    """
    프로필 3단계 제출 -> 심사 대기(PENDING_VERIFICATION)
    """
    profile = user.merchant_profile
    if not profile:
        return {"success": False, "message": "Merchant profile not found", "status": 404}
    if profile.profile_status not in ("INCOMPLETE", "REJECTED"):
        return {"success": False,
                "message": f"Profile cannot be submitted while status is {profile.profile_status}",
                "status": 409}

    errors = validate_profile(data)
    if errors:
        return {"success": False, "message": "Validation failed", "errors": errors}

    error, saved = _store_documents(profile, files)
    if error:
        return {"success": False, "message": error}

    _apply_fields(profile, data)
    profile.profile_status = 'PENDING_VERIFICATION'
    profile.submitted_at = datetime.now()
    profile.rejection_reason = None

    notify_admins("PROFILE_SUBMITTED_FOR_VERIFICATION", "Profile submitted for verification",
                  f"{profile.business_name} submitted their profile for verification.",
                  "MERCHANT", user.id, actor=user)
    log_activity("PROFILE_SUBMITTED", "MERCHANT", f"{profile.business_name} submitted profile", actor=user,
                 resource_type="MERCHANT", resource_id=user.id, merchant_id=user.id)
    if not _commit_profile(saved):
        return dict(PROFILE_SAVE_FAILED)
    return {"success": True, "message": "Profile submitted for verification", "data": {"user": user.to_dict()}}


def verification_status(user):
    profile = user.merchant_profile
    if not profile:
        return {"success": False, "message": "Merchant profile not found", "status": 404}
    return {
        "success": True,
        "data": {
            "profileStatus": profile.profile_status,
            "isVerified": profile.profile_status == 'VERIFIED',
            "submittedAt": profile.submitted_at.isoformat() if profile.submitted_at else None,
            "verifiedAt": profile.verified_at.isoformat() if profile.verified_at else None,
            "rejectionReason": profile.rejection_reason,
        },
    }


def rejection_details(user):
    profile = user.merchant_profile
    if not profile or profile.profile_status != 'REJECTED':
        return {"success": False, "message": "Profile has not been rejected", "status": 404}
    return {
        "success": True,
        "data": {
            "rejectionReason": profile.rejection_reason,
            "verificationNotes": profile.verification_notes,
            "rejectedAt": profile.rejected_at.isoformat() if profile.rejected_at else None,
        },
    }


def resubmit_documents(user, data, files=None):
    profile = user.merchant_profile
    if not profile or profile.profile_status != 'REJECTED':
        return {"success": False, "message": "Only rejected profiles can be resubmitted", "status": 409}

    errors = validate_profile({**_profile_as_input(profile), **data})
    if errors:
        return {"success": False, "message": "Validation failed", "errors": errors}

    error, saved = _store_documents(profile, files)
    if error:
        return {"success": False, "message": error}

    _apply_fields(profile, data)
    profile.profile_status = 'PENDING_VERIFICATION'
    profile.submitted_at = datetime.now()

    notify_admins("PROFILE_SUBMITTED_FOR_VERIFICATION", "Documents resubmitted",
                  f"{profile.business_name} resubmitted documents for verification.",
                  "MERCHANT", user.id, actor=user)
    log_activity("DOCUMENTS_RESUBMITTED", "MERCHANT", f"{profile.business_name} resubmitted documents",
                 actor=user, resource_type="MERCHANT", resource_id=user.id, merchant_id=user.id)
    if not _commit_profile(saved):
        return dict(PROFILE_SAVE_FAILED)
    return {"success": True, "message": "Documents resubmitted for verification"}


def _profile_as_input(profile):
    data = {}
    for key, column in PROFILE_FIELDS.items():
        value = getattr(profile, column)
        if value is not None:
            data[key] = value
    return data


def pending_merchants():
    users = Users.query.join(MerchantProfiles) \
        .filter(MerchantProfiles.profile_status == 'PENDING_VERIFICATION') \
        .order_by(MerchantProfiles.submitted_at.asc()).all()
    return {"success": True, "data": {"merchants": [u.to_dict() for u in users]}}


def verify_merchant(admin, merchant_id, approved, notes=None):
    """
    가맹점 심사: 승인 -> VERIFIED, 반려 -> REJECTED (사유 필수)
    """
    user = db.session.get(Users, merchant_id)
    if not user or user.role != 'MERCHANT' or not user.merchant_profile:
        return {"success": False, "message": "Merchant not found", "status": 404}

    profile = user.merchant_profile
    if profile.profile_status != 'PENDING_VERIFICATION':
        return {"success": False,
                "message": f"Merchant is not awaiting verification (status: {profile.profile_status})",
                "status": 409}

    notes = (notes or "").strip() or None
    if approved:
        profile.profile_status = 'VERIFIED'
        profile.verified_at = datetime.now()
        profile.verification_notes = notes
        profile.rejection_reason = None
        create_notification(user, "PROFILE_VERIFIED", "Profile verified",
                            "Your business profile has been verified. You can now create gift cards.",
                            "MERCHANT", user.id, actor=admin)
        message = "Merchant verified successfully"
    else:
        if not notes:
            return {"success": False, "message": "Rejection reason is required"}
        profile.profile_status = 'REJECTED'
        profile.rejected_at = datetime.now()
        profile.rejection_reason = notes
        create_notification(user, "PROFILE_REJECTED", "Profile rejected",
                            f"Your business profile was rejected: {notes}",
                            "MERCHANT", user.id, actor=admin)
        message = "Merchant rejected"

    log_activity("MERCHANT_VERIFIED" if approved else "MERCHANT_REJECTED", "MERCHANT",
                 f"{profile.business_name}: {message}", actor=admin, resource_type="MERCHANT",
                 resource_id=user.id, merchant_id=user.id, metadata={"notes": notes})
    db.session.commit()
    current_app.logger.info(f"Merchant {user.id} verification -> {profile.profile_status}")
    return {"success": True, "message": message, "data": {"merchant": user.to_dict()}}


def toggle_suspend(admin, merchant_id):
    user = db.session.get(Users, merchant_id)
    if not user or user.role != 'MERCHANT':
        return {"success": False, "message": "Merchant not found", "status": 404}

    user.is_active = not user.is_active
    action = "MERCHANT_REACTIVATED" if user.is_active else "MERCHANT_SUSPENDED"
    log_activity(action, "MERCHANT", f"{user.email}: {action.lower()}", actor=admin,
                 resource_type="MERCHANT", resource_id=user.id, merchant_id=user.id, severity="WARNING")
    db.session.commit()
    message = "Merchant reactivated" if user.is_active else "Merchant suspended"
    return {"success": True, "message": message, "data": {"merchant": user.to_dict()}}


def _merchant_dict(user):
    """관리자 목록/상세용 (표시 정보 포함)"""
    data = user.to_dict()
    profile = user.merchant_profile
    if profile:
        data["display"] = {
            "initials": business_initials(profile.business_name),
            "location": format_location(profile.city, profile.state, profile.country),
            "status": profile_status_config(profile.profile_status),
            "editable": can_edit_merchant(profile.profile_status),
        }
    return data


def list_merchants(search=None, status=None, page=1, limit=10):
    query = Users.query.filter(Users.role == 'MERCHANT').outerjoin(MerchantProfiles)
    if status:
        query = query.filter(MerchantProfiles.profile_status == status)
    if search:
        like = f"%{search}%"
        query = query.filter(or_(Users.name.ilike(like), Users.email.ilike(like),
                                 MerchantProfiles.business_name.ilike(like)))
    pagination = query.order_by(Users.created_at.desc()).paginate(page=page, per_page=limit, error_out=False)
    return {
        "success": True,
        "data": {
            "merchants": [_merchant_dict(u) for u in pagination.items],
            "pagination": {"total": pagination.total, "page": page, "limit": limit,
                           "totalPages": pagination.pages},
        },
    }


def get_merchant(merchant_id):
    user = db.session.get(Users, merchant_id)
    if not user or user.role != 'MERCHANT':
        return {"success": False, "message": "Merchant not found", "status": 404}
    data = _merchant_dict(user)
    data["stats"] = merchant_stats(user.id)
    return {"success": True, "data": {"merchant": data}}


def admin_update_merchant(admin, merchant_id, data):
    """심사 완료(VERIFIED) 가맹점만 수정 가능"""
    user = db.session.get(Users, merchant_id)
    if not user or user.role != 'MERCHANT' or not user.merchant_profile:
        return {"success": False, "message": "Merchant not found", "status": 404}
    if not can_edit_merchant(user.merchant_profile.profile_status):
        return {"success": False, "message": "Only verified merchants can be edited", "status": 409}

    merged = {**_profile_as_input(user.merchant_profile), **data}
    errors = validate_profile(merged)
    if errors:
        return {"success": False, "message": "Validation failed", "errors": errors}

    if clean_text(data, "name"):
        user.name = clean_text(data, "name")
    if "phone" in data:
        user.phone = data.get("phone")
    _apply_fields(user.merchant_profile, data)
    log_activity("MERCHANT_UPDATED", "MERCHANT", f"Admin updated {user.email}", actor=admin,
                 resource_type="MERCHANT", resource_id=user.id, merchant_id=user.id)
    db.session.commit()
    return {"success": True, "message": "Merchant updated successfully", "data": {"merchant": user.to_dict()}}


def update_own_profile(user, data, files=None):
    profile = user.merchant_profile
    if not profile:
        return {"success": False, "message": "Merchant profile not found", "status": 404}

    merged = {**_profile_as_input(profile), **data}
    errors = {}
    # 미제출 프로필은 입력된 항목만 부분 검증
    if profile.profile_status == 'INCOMPLETE':
        for step in (1, 2, 3):
            step_errors = validate_step(step, merged)
            errors.update({k: v for k, v in step_errors.items() if k in data or k == "bankCode"})
    else:
        errors = validate_profile(merged)
    if errors:
        return {"success": False, "message": "Validation failed", "errors": errors}

    error, saved = _store_documents(profile, files)
    if error:
        return {"success": False, "message": error}

    if clean_text(data, "name"):
        user.name = clean_text(data, "name")
    if "phone" in data:
        user.phone = data.get("phone")
    _apply_fields(profile, data)
    log_activity("PROFILE_UPDATED", "MERCHANT", f"{profile.business_name} updated profile", actor=user,
                 resource_type="MERCHANT", resource_id=user.id, merchant_id=user.id)
    if not _commit_profile(saved):
        return dict(PROFILE_SAVE_FAILED)
    return {"success": True, "message": "Profile updated successfully", "data": {"user": user.to_dict()}}


def merchant_stats(merchant_id):
    total_sales = db.session.query(func.coalesce(func.sum(PurchasedGiftCards.purchase_amount), 0)) \
        .filter(PurchasedGiftCards.merchant_id == merchant_id).scalar()
    redeemed_total = db.session.query(func.coalesce(func.sum(Redemptions.amount), 0)) \
        .select_from(Redemptions).join(PurchasedGiftCards) \
        .filter(PurchasedGiftCards.merchant_id == merchant_id).scalar()
    redemption_count = Redemptions.query.join(PurchasedGiftCards) \
        .filter(PurchasedGiftCards.merchant_id == merchant_id).count()
    active_cards = GiftCards.query.filter(GiftCards.merchant_id == merchant_id, GiftCards.is_active.is_(True),
                                          GiftCards.expiry_date >= datetime.now()).count()
    return {
        "totalSales": f"{total_sales:.2f}",
        "activeGiftCards": active_cards,
        "redemptions": redemption_count,
        "revenue": f"{redeemed_total:.2f}",
    }


def dashboard(user):
    return {"success": True, "data": merchant_stats(user.id)}


def platform_dashboard():
    """관리자 대시보드 집계"""
    statuses = dict(db.session.query(MerchantProfiles.profile_status, func.count(MerchantProfiles.id))
                    .group_by(MerchantProfiles.profile_status).all())
    total_sales = db.session.query(func.coalesce(func.sum(PurchasedGiftCards.purchase_amount), 0)).scalar()
    total_redeemed = db.session.query(func.coalesce(func.sum(Redemptions.amount), 0)).scalar()
    return {
        "success": True,
        "data": {
            "totalMerchants": Users.query.filter_by(role='MERCHANT').count(),
            "merchantsByStatus": {s: statuses.get(s, 0) for s in PROFILE_STATUSES},
            "totalGiftCards": GiftCards.query.count(),
            "totalPurchases": PurchasedGiftCards.query.count(),
            "totalRedemptions": Redemptions.query.count(),
            "totalSales": f"{total_sales:.2f}",
            "totalRedeemed": f"{total_redeemed:.2f}",
            "openTickets": SupportTickets.query.filter(SupportTickets.status != 'CLOSE').count(),
        },
    }
