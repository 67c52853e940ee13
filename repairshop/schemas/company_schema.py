from marshmallow_sqlalchemy import SQLAlchemyAutoSchema, auto_field
from marshmallow import EXCLUDE, fields, validate
from repairshop.models.company import Company

class CompanySchema(SQLAlchemyAutoSchema):
    class Meta:
        model = Company
        load_instance = False
        unknown = EXCLUDE

    id = auto_field(dump_only=True)
    name = auto_field(validate=validate.Length(min=1, max=128))
    address = auto_field(validate=validate.Length(min=1, max=256))
    phone = auto_field(validate=validate.Length(min=1, max=32))
    email = fields.Email(required=True)
    logo_url = fields.Url(allow_none=True, load_default=None)
    created_at = auto_field(dump_only=True)
    updated_at = auto_field(dump_only=True)
