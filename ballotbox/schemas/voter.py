from marshmallow import Schema, fields, validate

from ..extensions import ma


class VoterRecordSchema(Schema):
    voter_id = fields.Str(required=True, validate=validate.Length(min=1, max=32))
    prefix = fields.Str(required=False, allow_none=True, validate=validate.Length(max=30))
    first_name = fields.Str(required=True, validate=validate.Length(min=1, max=120))
    last_name = fields.Str(required=True, validate=validate.Length(min=1, max=120))
    level = fields.Str(required=False, allow_none=True, validate=validate.Length(max=30))
    room = fields.Str(required=False, allow_none=True, validate=validate.Length(max=30))


class VoterImportSchema(Schema):
    voters = fields.List(fields.Nested(VoterRecordSchema), required=True, validate=validate.Length(min=1, max=5000))


class VoterReadSchema(ma.Schema):
    voter_id = fields.Str()
    prefix = fields.Str(allow_none=True)
    first_name = fields.Str()
    last_name = fields.Str()
    level = fields.Str(allow_none=True)
    room = fields.Str(allow_none=True)
    vote_status = fields.Str(allow_none=True)
    voted_at = fields.DateTime(allow_none=True)


class PartyCreateSchema(Schema):
    name = fields.Str(required=True, validate=validate.Length(min=1, max=200))
    number = fields.Int(required=True, validate=validate.Range(min=1))


class PartyReadSchema(ma.Schema):
    id = fields.Int()
    name = fields.Str()
    number = fields.Int()
