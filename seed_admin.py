from app import create_app
from models import db, Users

app = create_app()


def seed_admin():
    """
    초기 관리자 계정 생성.
    ADMIN_EMAIL / ADMIN_PASSWORD_BCRYPT 환경변수 사용 (평문 비밀번호는 저장하지 않음)
    """
    with app.app_context():
        email = app.config['ADMIN_EMAIL'].strip().lower()
        password_hash = app.config['ADMIN_PASSWORD_BCRYPT']
        if not password_hash:
            print("ADMIN_PASSWORD_BCRYPT is not set. Nothing to do.")
            return

        admin = Users.query.filter_by(email=email).first()
        if admin:
            admin.password_hash = password_hash
            admin.role = 'ADMIN'
            print(f"Admin '{email}' updated.")
        else:
            db.session.add(Users(email=email, name="Administrator", role='ADMIN',
                                 password_hash=password_hash, is_first_time=False))
            print(f"Admin '{email}' created.")
        db.session.commit()


if __name__ == "__main__":
    seed_admin()
