from marshmallow import Schema, fields, validate, validates_schema, ValidationError


class ElectionStatusUpdateSchema(Schema):
    status = fields.Str(required=False, validate=validate.OneOf(["open", "closed", "scheduled"]))
    # Times without an offset are read as election-local wall clock
    open_time = fields.DateTime(required=False, allow_none=True)
    close_time = fields.DateTime(required=False, allow_none=True)

    @validates_schema
    def check(self, data, **kwargs):
        if not data:
            raise ValidationError("At least one field must be provided")
        open_time = data.get("open_time")
        close_time = data.get("close_time")
        if (
            open_time and close_time
            and (open_time.tzinfo is None) == (close_time.tzinfo is None)
            and close_time <= open_time
        ):
            raise ValidationError("close_time must be after open_time", field_name="close_time")
