# create_admin.py
"""
Bootstrap (or promote) the back-office admin account.

    ADMIN_EMAIL=ops@nitionzpvtltd.com ADMIN_PASSWORD='...' python create_admin.py
    python create_admin.py ops@nitionzpvtltd.com 'S3cure!Passw0rd' "Ops Admin"
"""
from __future__ import annotations

import os
import sys

from nitionz import create_app
from nitionz.extensions import db
from nitionz.services import users as user_service
from nitionz.utils.passwords import hash_password, policy_error


def main(argv: list[str]) -> int:
    email = (argv[1] if len(argv) > 1 else os.environ.get("ADMIN_EMAIL") or "").strip().lower()
    password = argv[2] if len(argv) > 2 else os.environ.get("ADMIN_PASSWORD") or ""
    name = argv[3] if len(argv) > 3 else os.environ.get("ADMIN_NAME") or "Nitionz Admin"

    if not email or not password:
        print("Usage: create_admin.py EMAIL PASSWORD [NAME]  (or ADMIN_EMAIL / ADMIN_PASSWORD)")
        return 2

    problem = policy_error(password)
    if problem:
        print(f"Password rejected: {problem}")
        return 2

    app = create_app()
    with app.app_context():
        user = user_service.find_by_email(email)
        if user is None:
            user = user_service.register_user(name, email, password, role="admin")
            print("Admin created:", user.email)
            return 0

        user.role = "admin"
        user.status = "active"
        user.password_hash = hash_password(password)
        user.failed_login_attempts = 0
        user.locked_until = None
        db.session.commit()
        print("Existing user promoted to admin:", user.email)
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
