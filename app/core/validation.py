"""
Input Validation Utilities

Validators for the values collected in chat conversations:
- driver name and phone number
- calendar dates (YYYY-MM-DD, not in the past)
- advance amounts and free-text reasons
- text sanitization before storage
"""
import re
import enum
from datetime import date
from decimal import Decimal, InvalidOperation


class ValidationPatterns:
    """Regex patterns for validation"""

    # digits, spaces, dashes, parentheses and an optional leading +
    PHONE = re.compile(r"^\+?[\d\s\-\(\)]+$")

    DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

    AMOUNT = re.compile(r"^\d+(?:\.\d{1,2})?$")


class DateValidationResult(str, enum.Enum):
    VALID = "valid"
    INVALID_FORMAT = "invalid_format"
    EXPIRED = "expired"


class DateValidator:
    """Calendar date validation for expiry and vacation dates"""

    @staticmethod
    def parse(text: str) -> date | None:
        """Parse a strict YYYY-MM-DD string into a real calendar date, or None"""
        if not text:
            return None
        text = text.strip()
        if not ValidationPatterns.DATE.match(text):
            return None
        try:
            return date.fromisoformat(text)
        except ValueError:
            return None

    @staticmethod
    def validate(text: str, today: date | None = None) -> DateValidationResult:
        """
        Classify a date answer.

        A date equal to ``today`` is still valid; only strictly earlier dates
        count as expired.
        """
        parsed = DateValidator.parse(text)
        if parsed is None:
            return DateValidationResult.INVALID_FORMAT
        if parsed < (today or date.today()):
            return DateValidationResult.EXPIRED
        return DateValidationResult.VALID


class PhoneNumberValidator:
    """Phone number validation"""

    MIN_DIGITS = 7

    @staticmethod
    def validate(phone: str) -> bool:
        if not phone:
            return False
        phone = phone.strip()
        if not ValidationPatterns.PHONE.match(phone):
            return False
        return len(re.sub(r"\D", "", phone)) >= PhoneNumberValidator.MIN_DIGITS

    @staticmethod
    def mask(phone: str) -> str:
        """Mask a phone number for logging (privacy)"""
        if len(phone) < 4:
            return "****"
        return phone[:-4] + "****"


class NameValidator:
    """Name validation utilities"""

    MIN_LENGTH = 2
    MAX_LENGTH = 100

    @staticmethod
    def validate(name: str) -> tuple[bool, str | None]:
        """
        Validate a full name.

        Returns:
            Tuple of (is_valid, error_message)
        """
        if not name or not name.strip():
            return False, "Name is required"

        name = name.strip()

        if len(name) < NameValidator.MIN_LENGTH:
            return False, f"Name too short (minimum {NameValidator.MIN_LENGTH} characters)"

        if len(name) > NameValidator.MAX_LENGTH:
            return False, f"Name too long (maximum {NameValidator.MAX_LENGTH} characters)"

        if name.startswith("/"):
            return False, "Name cannot be a command"

        return True, None


class AmountValidator:
    """Advance payment amount validation"""

    MAX_AMOUNT = Decimal("10000")

    @staticmethod
    def parse(text: str) -> tuple[Decimal | None, str | None]:
        """
        Parse and validate an amount typed by a driver ("500", "$1,250.50").

        Returns:
            Tuple of (amount, error_message)
        """
        if not text:
            return None, "Amount is required"

        cleaned = text.strip().lstrip("$").replace(",", "").strip()
        if not ValidationPatterns.AMOUNT.match(cleaned):
            return None, "Amount must be a number with at most 2 decimal places"

        try:
            amount = Decimal(cleaned)
        except InvalidOperation:
            return None, "Amount must be a number"

        if amount <= 0:
            return None, "Amount must be greater than 0"

        if amount > AmountValidator.MAX_AMOUNT:
            return None, f"Amount cannot exceed {AmountValidator.MAX_AMOUNT}"

        return amount, None


class ReasonValidator:
    """Free-text reason for advance and vacation requests"""

    MIN_LENGTH = 10
    MAX_LENGTH = 500

    @staticmethod
    def validate(reason: str) -> tuple[bool, str | None]:
        if not reason or not reason.strip():
            return False, "Reason is required"

        length = len(reason.strip())
        if length < ReasonValidator.MIN_LENGTH:
            return False, f"Reason too short (minimum {ReasonValidator.MIN_LENGTH} characters)"
        if length > ReasonValidator.MAX_LENGTH:
            return False, f"Reason too long (maximum {ReasonValidator.MAX_LENGTH} characters)"

        return True, None


class TextSanitizer:
    """Text sanitization before storage"""

    @staticmethod
    def sanitize(text: str, max_length: int = 1000) -> str:
        """
        Drop control characters (newlines and tabs stay), collapse runs of
        spaces, trim and cap the length.

        Does not HTML-escape; outbound messages are sent as plain text.
        """
        if not text:
            return ""

        sanitized = "".join(char for char in text if char >= " " or char in "\n\t")
        sanitized = re.sub(r" +", " ", sanitized)
        return sanitized.strip()[:max_length]
