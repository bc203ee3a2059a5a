import pytest

from loanledger.errors import ValidationError
from loanledger.validators import BookValidator, MemberValidator, validate_due_days


@pytest.fixture
def validator():
    return MemberValidator()


@pytest.mark.parametrize("email", ["ada@gmail.com", " ada.reader@gmail.com "])
def test_valid_email(validator, email):
    assert validator.validate_email(email) is None


@pytest.mark.parametrize("email", ["", None, "ada@yahoo.com", "ada@gmail.com.pk", "@gmail.com"])
def test_invalid_email(validator, email):
    assert validator.validate_email(email) is not None


def test_email_domain_is_configurable():
    validator = MemberValidator(email_domain="@library.org")
    assert validator.validate_email("ada@library.org") is None
    assert validator.validate_email("ada@gmail.com") == "Email must be a @library.org address."


@pytest.mark.parametrize("phone", ["03001234567", "12345678901"])
def test_valid_phone(validator, phone):
    assert validator.validate_phone(phone) is None


@pytest.mark.parametrize("phone", ["", None, "0300123456", "030012345678", "0300-123456", "+3001234567"])
def test_invalid_phone(validator, phone):
    assert validator.validate_phone(phone) == "Phone number must be exactly 11 digits."


def test_validate_collects_every_field(validator):
    errors = validator.validate("", "", "nope", "123")
    assert set(errors) == {"member_id", "name", "email", "phone"}
    assert validator.validate("M-1", "Ada", "ada@gmail.com", "03001234567") == {}


def test_ensure_valid_raises_first_failure(validator):
    with pytest.raises(ValidationError) as exc:
        validator.ensure_valid("M-1", "Ada", "ada@gmail.com", "123")
    assert exc.value.field == "phone"
    assert str(exc.value) == "Phone number must be exactly 11 digits."


def test_validate_due_days_bounds():
    assert validate_due_days(1) == 1
    assert validate_due_days(90) == 90
    assert validate_due_days(120, max_due_days=365) == 120
    with pytest.raises(ValidationError, match="between 1 and 90"):
        validate_due_days(91)
    with pytest.raises(ValidationError, match="whole number"):
        validate_due_days(2.5)


def test_book_validator():
    assert BookValidator.validate_text("  Dune ", "title") == "Dune"
    assert BookValidator.normalize_isbn("0-441-17271-x") == "044117271X"
    assert BookValidator.normalize_isbn(None) == ""
    assert BookValidator.validate_total_copies(4) == 4
    with pytest.raises(ValidationError):
        BookValidator.validate_total_copies(0)


@pytest.mark.parametrize("isbn", ["9780441172719", "978-0-441-17271-9", "0441172717", "0-8044-2957-X"])
def test_valid_isbn(isbn):
    assert BookValidator.is_valid_isbn(isbn)


@pytest.mark.parametrize("isbn", ["", None, "not-an-isbn", "978-0-441-17271-0", "0441172718",
                                  "12345", "X441172717", "978044117271X"])
def test_invalid_isbn(isbn):
    assert not BookValidator.is_valid_isbn(isbn)


def test_validate_isbn():
    assert BookValidator.validate_isbn("978-0-441-17271-9") == "9780441172719"
    assert BookValidator.validate_isbn("  ") == ""
    assert BookValidator.validate_isbn(None) == ""
    with pytest.raises(ValidationError) as exc:
        BookValidator.validate_isbn("not-an-isbn")
    assert exc.value.field == "isbn"
