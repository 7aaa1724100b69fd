from werkzeug.security import generate_password_hash, check_password_hash

MIN_PASSWORD_LENGTH = 8


def hash_password(raw_password: str) -> str:
    return generate_password_hash(raw_password)


def verify_password(raw_password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return check_password_hash(password_hash, raw_password)


def password_problem(raw_password: str) -> str | None:
    """Returns a reason the password is unusable for an operator account, or None."""
    if not raw_password or len(raw_password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    if raw_password.isdigit() or raw_password.isalpha():
        return "Password must mix letters and digits"
    return None
