# elections/create_superadmin.py

# Bootstrap the first superadmin account:
#   SUPERADMIN_NAME=... SUPERADMIN_EMAIL=... SUPERADMIN_SRN=... SUPERADMIN_PASSWORD=... \
#   python -m elections.create_superadmin

import os
import sys

from elections import app, db
from elections.authentication.identity import bootstrap_superadmin
from elections.errors import ElectionsError
from elections.security.input_validator import InputValidator


def main():
    validator = InputValidator()
    payload = {
        'fullName': os.environ.get('SUPERADMIN_NAME', 'Election Owner'),
        'email': os.environ.get('SUPERADMIN_EMAIL'),
        'srn': os.environ.get('SUPERADMIN_SRN'),
        'password': os.environ.get('SUPERADMIN_PASSWORD'),
    }
    with app.app_context():
        db.create_all()
        try:
            user = bootstrap_superadmin(**validator.validate_registration(payload))
        except ElectionsError as e:
            print(f"Superadmin not created: {e.message}", file=sys.stderr)
            return 1
        print(f"Superadmin created: id={user.id} email={user.email} srn={user.srn}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
