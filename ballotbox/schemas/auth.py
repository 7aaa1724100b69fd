from marshmallow import Schema, fields, validate, validates, ValidationError

from ..utils.security import password_problem


class LoginSchema(Schema):
    """Schema for login request"""
    username = fields.Str(required=True, validate=validate.Length(min=1, max=80))
    password = fields.Str(required=True, validate=validate.Length(min=1, max=128))


class UserCreateSchema(Schema):
    username = fields.Str(required=True, validate=validate.Length(min=3, max=80))
    password = fields.Str(required=True, validate=validate.Length(max=128))
    display_name = fields.Str(required=False, allow_none=True, validate=validate.Length(max=120))
    role = fields.Str(required=False, load_default="POLL_WORKER", validate=validate.OneOf(["ADMIN", "POLL_WORKER"]))

    @validates("password")
    def check_password(self, value, **kwargs):
        problem = password_problem(value)
        if problem:
            raise ValidationError(problem)
