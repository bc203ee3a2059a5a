import re
from typing import Dict, Optional

from loanledger.errors import ValidationError

PHONE_PATTERN = "^[0-9]{%d}$"


def validate_due_days(due_days, max_due_days: int = 90) -> int:
    """Loan period in whole days, 1..max_due_days inclusive."""
    if isinstance(due_days, bool) or not isinstance(due_days, int):
        raise ValidationError("due_days must be a whole number of days.", field="due_days")
    if not 1 <= due_days <= max_due_days:
        raise ValidationError(f"due_days must be between 1 and {max_due_days}.", field="due_days")
    return due_days


class MemberValidator:
    """Contact rules for the member form: email domain suffix and fixed-length phone."""

    def __init__(self, email_domain: str = "@gmail.com", phone_digits: int = 11) -> None:
        self.email_domain = email_domain
        self.phone_digits = phone_digits
        self._phone_re = re.compile(PHONE_PATTERN % phone_digits)

    def validate_email(self, email: Optional[str]) -> Optional[str]:
        if not email or not email.strip().endswith(self.email_domain):
            return f"Email must be a {self.email_domain} address."
        if len(email.strip()) == len(self.email_domain):
            return "Email must include a mailbox name."
        return None

    def validate_phone(self, phone: Optional[str]) -> Optional[str]:
        if phone is None or not self._phone_re.match(phone.strip()):
            return f"Phone number must be exactly {self.phone_digits} digits."
        return None

    def validate(self, member_id: Optional[str], name: Optional[str],
                 email: Optional[str], phone: Optional[str]) -> Dict[str, str]:
        """Return field -> message for every failing field; empty when valid."""
        errors: Dict[str, str] = {}
        if not member_id or not member_id.strip():
            errors["member_id"] = "Member ID is required."
        if not name or not name.strip():
            errors["name"] = "Name is required."
        email_error = self.validate_email(email)
        if email_error:
            errors["email"] = email_error
        phone_error = self.validate_phone(phone)
        if phone_error:
            errors["phone"] = phone_error
        return errors

    def ensure_valid(self, member_id: Optional[str], name: Optional[str],
                     email: Optional[str], phone: Optional[str]) -> None:
        errors = self.validate(member_id, name, email, phone)
        if errors:
            field, message = next(iter(errors.items()))
            raise ValidationError(message, field=field)


class BookValidator:

    @staticmethod
    def validate_text(value: Optional[str], field: str) -> str:
        if value is None or not value.strip():
            raise ValidationError(f"{field.capitalize()} cannot be empty.", field=field)
        return value.strip()

    @staticmethod
    def validate_total_copies(total_copies) -> int:
        if isinstance(total_copies, bool) or not isinstance(total_copies, int) or total_copies < 1:
            raise ValidationError("total_copies must be a positive whole number.", field="total_copies")
        return total_copies

    @staticmethod
    def normalize_isbn(raw: Optional[str]) -> str:
        if raw is None:
            return ""
        return re.sub(r"[^0-9Xx]", "", raw).upper()

    @staticmethod
    def is_valid_isbn(isbn: Optional[str]) -> bool:
        """ISBN-10 or ISBN-13 with a correct check digit; hyphens and spaces are ignored."""
        s = BookValidator.normalize_isbn(isbn)
        if len(s) == 10:
            if not s[:-1].isdigit():
                return False
            total = sum(i * int(ch) for i, ch in enumerate(s[:-1], 1))
            check = 10 if s[-1] == "X" else int(s[-1])
            # sum of i*d_i for i=1..10 is a multiple of 11
            return (total + 10 * check) % 11 == 0
        if len(s) == 13 and s.isdigit():
            total = sum((1 if i % 2 == 0 else 3) * int(ch) for i, ch in enumerate(s[:-1]))
            return (10 - total % 10) % 10 == int(s[-1])
        return False

    @staticmethod
    def validate_isbn(raw: Optional[str]) -> str:
        """Normalised ISBN, or "" when none was given. Anything else must check out."""
        if raw is None or not raw.strip():
            return ""
        if not BookValidator.is_valid_isbn(raw):
            raise ValidationError("ISBN must be a valid ISBN-10 or ISBN-13.", field="isbn")
        return BookValidator.normalize_isbn(raw)
