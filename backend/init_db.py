"""
Initialize the MediShop database and register an admin
Usage: python init_db.py <phone> [name] [email] [password]
"""
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from medishop.database import SessionLocal, engine, Base
from medishop.models import Admin
from medishop.utils.security import get_password_hash
from medishop.utils.validators import validate_indian_mobile


def init_database(phone: str, name: str = "Admin User", email: str = None, password: str = None) -> int:
    """Create tables and register (or promote) an admin by phone"""

    print("=" * 60)
    print("MediShop - Database Initialization")
    print("=" * 60)

    is_valid, phone, error = validate_indian_mobile(phone)
    if not is_valid:
        print(f"❌ Error: {error}")
        return 1

    print("\n📦 Creating database tables...")
    try:
        Base.metadata.create_all(bind=engine)
        print("✅ Database tables created successfully!")
    except Exception as e:
        print(f"❌ Error creating tables: {str(e)}")
        return 1

    db = SessionLocal()
    try:
        admin = db.query(Admin).filter(Admin.phone == phone).first()

        if admin and admin.is_admin:
            print("\n⚠️  Admin already exists")
        elif admin:
            admin.is_admin = True
            admin.name = name
            admin.email = email or admin.email
            print("\n👤 Promoting existing account to admin...")
        else:
            admin = Admin(
                phone=phone,
                name=name,
                email=email or f"admin_{phone}@medishop.com",
                is_admin=True
            )
            db.add(admin)
            print("\n👤 Creating admin...")

        if password:
            admin.password_hash = get_password_hash(password)

        db.commit()

        print("=" * 60)
        print(f"   Phone: {admin.phone}")
        print(f"   Name: {admin.name}")
        print(f"   Email: {admin.email or 'Not set'}")
        print(f"   Password login: {'enabled' if admin.password_hash else 'OTP only'}")
        print("=" * 60)
        print("\n🚀 You can now start the backend server:")
        print("   uvicorn medishop.main:app --reload\n")
        return 0

    except Exception as e:
        print(f"\n❌ Error: {str(e)}")
        db.rollback()
        return 1

    finally:
        db.close()


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python init_db.py <phone> [name] [email] [password]")
        sys.exit(1)

    args = sys.argv[1:]
    sys.exit(init_database(
        args[0],
        name=args[1] if len(args) > 1 else "Admin User",
        email=args[2] if len(args) > 2 else None,
        password=args[3] if len(args) > 3 else None
    ))
