# scripts/create_admin.py
# Ensure an ADMIN account exists. Admins cannot sign up through the API.
#
#   python scripts/create_admin.py --email admin@example.com --password 'ChangeMeStrong!'
import argparse
import os
import sys

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from rentalcore import models  # noqa: E402
from rentalcore.db import init_db, session_scope  # noqa: E402
from rentalcore.security import hash_password  # noqa: E402


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Create or promote an ADMIN user.")
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--first-name", default="Admin")
    parser.add_argument("--last-name", default="User")
    args = parser.parse_args(argv)

    if len(args.password) < 8:
        parser.error("password must be at least 8 characters")

    init_db()
    email = args.email.strip().lower()
    with session_scope() as db:
        user = db.query(models.User).filter(models.User.email == email).first()
        if user is None:
            user = models.User(email=email, first_name=args.first_name, last_name=args.last_name)
            db.add(user)
        user.role = models.Role.ADMIN.value
        user.password_hash = hash_password(args.password)
        user.is_blocked = False
    print("Admin ensured:", email)
    return 0


if __name__ == "__main__":
    sys.exit(main())
