from marshmallow import Schema, fields, validate, pre_load

from ..extensions import ma


def _strip_upper(data, key):
    if isinstance(data, dict) and isinstance(data.get(key), str):
        data = dict(data)
        data[key] = data[key].strip().upper()
    return data


class ActivateTokenSchema(Schema):
    code = fields.Str(required=True, validate=validate.Length(min=1, max=32))
    voter_id = fields.Str(required=True, validate=validate.Length(min=1, max=32))
    station_level = fields.Str(required=False, allow_none=True, validate=validate.Length(max=30))

    @pre_load
    def normalize(self, data, **kwargs):
        return _strip_upper(data, "code")


class ScanTokenSchema(Schema):
    code = fields.Str(required=True, validate=validate.Length(min=1, max=32))
    station_level = fields.Str(required=False, allow_none=True, validate=validate.Length(max=30))

    @pre_load
    def normalize(self, data, **kwargs):
        return _strip_upper(data, "code")


class BatchCreateSchema(Schema):
    count = fields.Int(required=True, validate=validate.Range(min=1))
    station_level = fields.Str(required=False, allow_none=True, validate=validate.Length(max=30))


class BatchPreviewSchema(Schema):
    count = fields.Int(required=True, validate=validate.Range(min=1))


class SweepSchema(Schema):
    timeout_minutes = fields.Int(required=False, allow_none=True, validate=validate.Range(min=1, max=24 * 60))


class TokenReadSchema(ma.Schema):
    # No voter field: the link is never exposed
    code = fields.Str()
    status = fields.Str()
    station_level = fields.Str(allow_none=True)
    activated_at = fields.DateTime(allow_none=True)
    voting_started_at = fields.DateTime(allow_none=True)


class PrintBatchReadSchema(ma.Schema):
    batch_id = fields.Str()
    token_count = fields.Int()
    station_level = fields.Str(allow_none=True)
    printed_by = fields.UUID(allow_none=True)
    printed_at = fields.DateTime()
