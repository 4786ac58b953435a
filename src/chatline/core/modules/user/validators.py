from chatline.errors import ValidationError

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6


def validate_username(username: str) -> None:
    """Validate username meets requirements.

    Raises:
        ValidationError: If username is too short or contains whitespace
    """
    if len(username) < MIN_USERNAME_LENGTH:
        raise ValidationError(f"Username must be at least {MIN_USERNAME_LENGTH} characters")

    if any(char.isspace() for char in username):
        raise ValidationError("Username cannot contain whitespace characters")


def validate_password(password: str) -> None:
    """Validate password meets requirements.

    Requirements:
    - No whitespace characters
    - Minimum length of 6 characters

    Raises:
        ValidationError: If password doesn't meet requirements
    """
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    if any(char.isspace() for char in password):
        raise ValidationError("Password cannot contain whitespace characters")
