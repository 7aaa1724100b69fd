from marshmallow import Schema, fields, validate, validates_schema, ValidationError, pre_load


class VoteSubmitSchema(Schema):
    code = fields.Str(required=True, validate=validate.Length(min=1, max=32))
    party_id = fields.Int(required=False, allow_none=True, validate=validate.Range(min=1))
    abstain = fields.Bool(required=False, load_default=False)

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and isinstance(data.get("code"), str):
            data = dict(data)
            data["code"] = data["code"].strip().upper()
        return data

    @validates_schema
    def one_choice(self, data, **kwargs):
        abstain = data.get("abstain", False)
        party_id = data.get("party_id")
        if abstain and party_id is not None:
            raise ValidationError("Choose a party or abstain, not both")
        if not abstain and party_id is None:
            raise ValidationError("party_id is required unless abstaining")


class VoteReceiptSchema(Schema):
    message = fields.Str(required=True)
    station_level = fields.Str()
    is_abstain = fields.Bool()
