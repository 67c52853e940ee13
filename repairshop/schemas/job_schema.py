from marshmallow_sqlalchemy import SQLAlchemyAutoSchema, auto_field
from marshmallow import Schema, EXCLUDE, fields, validate, pre_load, validates, ValidationError
from repairshop.models.job import Job, JobStatus

# Nested payload shape used by the web client: {customer: {...}, device: {...}, details: {...}}
NESTED_FIELDS = {
    'customer': {'name': 'customer_name', 'phone': 'customer_phone', 'email': 'customer_email'},
    'device': {'name': 'device_name', 'model': 'device_model', 'condition': 'device_condition'},
    'details': {'problem': 'problem', 'status': 'status', 'handling_fees': 'handling_fees'},
}


def flatten_job_payload(data):
    """Accept either flat column names or the nested client shape."""
    if not isinstance(data, dict):
        return data
    flat = {key: value for key, value in data.items() if key not in NESTED_FIELDS}
    for group, mapping in NESTED_FIELDS.items():
        nested = data.get(group)
        if isinstance(nested, dict):
            for source, target in mapping.items():
                if source in nested:
                    flat[target] = nested[source]
    # "price" is the older name for handling fees
    if 'price' in flat and 'handling_fees' not in flat:
        flat['handling_fees'] = flat.pop('price')
    else:
        flat.pop('price', None)
    return flat


class JobSchema(SQLAlchemyAutoSchema):
    class Meta:
        model = Job
        load_instance = False
        unknown = EXCLUDE
        exclude = ('is_deleted',)

    id = auto_field(dump_only=True)
    job_card_number = auto_field(dump_only=True)
    customer_name = auto_field(validate=validate.Length(min=1, max=128))
    customer_phone = auto_field(validate=validate.Length(min=1, max=32))
    customer_email = fields.Email(allow_none=True, load_default=None)
    device_name = auto_field(validate=validate.Length(min=1, max=128))
    device_model = auto_field(validate=validate.Length(min=1, max=128))
    device_condition = auto_field(validate=validate.Length(min=1))
    problem = auto_field(validate=validate.Length(min=1))
    status = fields.Str(validate=validate.OneOf(JobStatus.values()), load_default=JobStatus.IN_PROGRESS.value)
    handling_fees = fields.Decimal(required=True, places=2, as_string=True, validate=validate.Range(min=0))
    created_at = auto_field(dump_only=True)
    updated_at = auto_field(dump_only=True)

    @pre_load
    def flatten(self, data, **kwargs):
        return flatten_job_payload(data)

    @validates('customer_phone')
    def validate_phone_has_digits(self, value, **kwargs):
        if not any(ch.isdigit() for ch in value):
            raise ValidationError("customer_phone must contain at least one digit")


class JobStatusSchema(Schema):
    status = fields.Str(required=True, validate=validate.OneOf(JobStatus.values()))
