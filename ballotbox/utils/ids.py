import uuid


def as_uuid(value):
    """JWT identities arrive as strings; the models store uuid.UUID."""
    if value is None or isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))
