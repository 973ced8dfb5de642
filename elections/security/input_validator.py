# elections/security/input_validator.py

import re
from datetime import datetime, timezone

import bleach

from elections.errors import ValidationError

# Input validation and sanitisation for request payloads


class InputValidator:
    def __init__(self):
        self.patterns = {
            'email': re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'),
            'srn': re.compile(r'^R\d{2}[A-Z]{2}\d{3}$'),
            'photo_url': re.compile(r'^https?://\S+$', re.IGNORECASE),
        }

    def sanitize_string(self, input_str, max_length=255):
        if not isinstance(input_str, str):
            raise ValidationError("Input must be a string")
        if len(input_str) > max_length:
            input_str = input_str[:max_length]
        # Strip all markup; stored text is plain
        return bleach.clean(input_str, tags=[], attributes={}, strip=True).strip()

    def normalize_srn(self, srn):
        if not isinstance(srn, str):
            return ''
        return srn.strip().upper()

    def normalize_email(self, email):
        if not isinstance(email, str):
            return ''
        return email.strip().lower()

    def validate_email(self, email):
        return isinstance(email, str) and bool(self.patterns['email'].match(email))

    def validate_srn(self, srn):
        return isinstance(srn, str) and bool(self.patterns['srn'].match(srn))

    def validate_photo_url(self, url):
        return isinstance(url, str) and bool(self.patterns['photo_url'].match(url))

    def parse_datetime(self, value, field):
        """Parse an ISO-8601 timestamp into naive UTC; offsets are honoured."""
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, str) and value.strip():
            raw = value.strip()
            if raw.endswith(('Z', 'z')):
                raw = raw[:-1] + '+00:00'
            try:
                parsed = datetime.fromisoformat(raw)
            except ValueError:
                raise ValidationError(f"Invalid {field} format")
        else:
            raise ValidationError(f"Invalid {field} format")
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed

    def require_fields(self, payload, fields):
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        missing = [f for f in fields if payload.get(f) in (None, '')]
        if missing:
            raise ValidationError(f"{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required")
        return payload

    def validate_registration(self, payload):
        self.require_fields(payload, ['fullName', 'email', 'srn', 'password'])
        full_name = self.sanitize_string(payload['fullName'], max_length=120)
        if not full_name:
            raise ValidationError("Full name is required")
        email = self.normalize_email(payload['email'])
        if not self.validate_email(email):
            raise ValidationError("Invalid email format")
        srn = self.normalize_srn(payload['srn'])
        if not self.validate_srn(srn):
            raise ValidationError("Invalid SRN format")
        return {
            'full_name': full_name,
            'email': email,
            'srn': srn,
            'password': payload['password'],
        }

    def validate_login(self, payload):
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        email = self.normalize_email(payload.get('email'))
        if not self.validate_email(email):
            raise ValidationError("Invalid email")
        password = payload.get('password')
        if not password:
            raise ValidationError("Password required")
        return email, password
