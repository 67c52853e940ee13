from marshmallow_sqlalchemy import SQLAlchemyAutoSchema, auto_field
from marshmallow import Schema, EXCLUDE, fields, validate, validates_schema, ValidationError
from repairshop.models.invoice import Invoice, InvoiceStatus


class LineItemSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    id = fields.Str()
    description = fields.Str(required=True, validate=validate.Length(min=1, max=255))
    quantity = fields.Int(required=True, strict=False, validate=validate.Range(min=1))
    unit_price = fields.Decimal(required=True, as_string=True, validate=validate.Range(min=0))
    # Derived from quantity x unit_price, never taken from input
    amount = fields.Decimal(dump_only=True, as_string=True)


class TaxSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    id = fields.Str()
    name = fields.Str(required=True, validate=validate.Length(min=1, max=64))
    rate = fields.Decimal(required=True, as_string=True, validate=validate.Range(min=0, max=100))
    amount = fields.Decimal(dump_only=True, as_string=True)


class InvoiceSchema(SQLAlchemyAutoSchema):
    class Meta:
        model = Invoice
        load_instance = False
        include_fk = True

    id = auto_field(dump_only=True)
    invoice_number = auto_field(dump_only=True)
    job_id = auto_field(dump_only=True)
    bill_description = auto_field()
    status = auto_field()
    issue_date = auto_field()
    due_date = auto_field()
    line_items = fields.List(fields.Nested(LineItemSchema))
    taxes = fields.List(fields.Nested(TaxSchema))
    subtotal = fields.Decimal(places=2, as_string=True, dump_only=True)
    tax_total = fields.Decimal(places=2, as_string=True, dump_only=True)
    bill_amount = fields.Decimal(places=2, as_string=True, dump_only=True)
    total = fields.Decimal(places=2, as_string=True, dump_only=True)
    notes = auto_field()
    terms = auto_field()
    created_at = auto_field(dump_only=True)
    job_card_number = fields.Method('get_job_card_number', dump_only=True)

    def get_job_card_number(self, obj):
        return obj.job.job_card_number if obj.job else None


class InvoiceUpdateSchema(Schema):
    """Header fields plus optional wholesale replacement of line items / taxes."""
    class Meta:
        unknown = EXCLUDE

    bill_description = fields.Str(validate=validate.Length(min=1, max=255))
    status = fields.Str(validate=validate.OneOf(InvoiceStatus.values()))
    issue_date = fields.Date()
    due_date = fields.Date(allow_none=True)
    notes = fields.Str(allow_none=True)
    terms = fields.Str(allow_none=True)
    line_items = fields.List(fields.Nested(LineItemSchema))
    taxes = fields.List(fields.Nested(TaxSchema))

    @validates_schema
    def validate_dates(self, data, **kwargs):
        issue_date = data.get('issue_date')
        due_date = data.get('due_date')
        if issue_date and due_date and due_date < issue_date:
            raise ValidationError({'due_date': 'due_date must not be before issue_date'})

    @validates_schema
    def validate_unique_ids(self, data, **kwargs):
        # Line items and taxes are edited by id, so ids must not repeat within an invoice
        errors = {}
        for key in ('line_items', 'taxes'):
            ids = [entry['id'] for entry in data.get(key) or [] if entry.get('id')]
            if len(ids) != len(set(ids)):
                errors[key] = [f"Duplicate ids in {key}"]
        if errors:
            raise ValidationError(errors)


class LineItemUpdateSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    description = fields.Str(validate=validate.Length(min=1, max=255))
    quantity = fields.Int(strict=False, validate=validate.Range(min=1))
    unit_price = fields.Decimal(as_string=True, validate=validate.Range(min=0))


class TaxUpdateSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    name = fields.Str(validate=validate.Length(min=1, max=64))
    rate = fields.Decimal(as_string=True, validate=validate.Range(min=0, max=100))
