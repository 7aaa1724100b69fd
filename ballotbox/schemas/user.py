from ..extensions import ma
from marshmallow import fields


class UserSchema(ma.Schema):
    id = fields.UUID()
    username = fields.Str()
    display_name = fields.Str(allow_none=True)
    role = fields.Str()
    is_active = fields.Bool()
    created_at = fields.DateTime()
    last_login_at = fields.DateTime(allow_none=True)
