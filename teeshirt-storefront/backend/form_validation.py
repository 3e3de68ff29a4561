from product_catalog import AVAILABLE_SIZES, COLOR_NAMES

MIN_PASSWORD_LENGTH = 6


class ValidationError(Exception):
    """Bad form input. The message is shown to the user as-is."""


def _blank(*values):
    return any(not str(v or "").strip() for v in values)


def validate_login(email, password):
    if _blank(email, password):
        raise ValidationError("Please fill in all fields")


def validate_signup(name, email, password, confirm_password):
    if _blank(name, email, password, confirm_password):
        raise ValidationError("Please fill in all fields")
    if password != confirm_password:
        raise ValidationError("Passwords do not match")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


def validate_variant_choice(color, size):
    """Color and size must both be picked from the catalog lists."""
    if _blank(color):
        raise ValidationError("Please select a color")
    if _blank(size):
        raise ValidationError("Please select a size")
    if color not in COLOR_NAMES:
        raise ValidationError("Please select a valid color")
    if size not in AVAILABLE_SIZES:
        raise ValidationError("Please select a valid size")


def parse_quantity_delta(value):
    """Quantity steps come in as whole numbers, e.g. 1 or -1."""
    if isinstance(value, bool):
        raise ValidationError("Quantity change must be a whole number")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError("Quantity change must be a whole number")


def parse_selected(value):
    if not isinstance(value, bool):
        raise ValidationError("Selected must be true or false")
    return value
