import unittest
from datetime import date, timedelta
from decimal import Decimal

from repairshop.config import TestConfig
from repairshop.extensions import db
from repairshop.models.invoice import Invoice
from repairshop.server import create_app


JOB_PAYLOAD = {
    'customer': {'name': 'John Doe', 'phone': '5551234567'},
    'device': {'name': 'iPhone', 'model': '13', 'condition': 'Scratched'},
    'details': {'problem': 'Screen replacement', 'handling_fees': '100.00'},
}


class InvoiceApiTestCase(unittest.TestCase):
    """Test invoice creation and editing through the API"""

    def setUp(self):
        self.app = create_app(TestConfig)
        self.app_context = self.app.app_context()
        self.app_context.push()
        self.client = self.app.test_client()
        response = self.client.post('/api/jobs', json=JOB_PAYLOAD)
        self.job = response.get_json()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.app_context.pop()

    def create_invoice(self):
        response = self.client.post(f"/api/jobs/{self.job['id']}/invoices")
        self.assertEqual(response.status_code, 201, response.get_json())
        return response.get_json()

    def assertTotals(self, invoice, subtotal, tax_total, total):
        self.assertEqual(Decimal(invoice['subtotal']), Decimal(subtotal))
        self.assertEqual(Decimal(invoice['tax_total']), Decimal(tax_total))
        self.assertEqual(Decimal(invoice['total']), Decimal(total))
        self.assertEqual(Decimal(invoice['bill_amount']), Decimal(subtotal))

    def test_create_from_job(self):
        """Test a new invoice carries the handling fee and default VAT"""
        invoice = self.create_invoice()
        self.assertEqual(invoice['invoice_number'], 'INV-0001')
        self.assertEqual(invoice['status'], 'Draft')
        self.assertEqual(invoice['job_card_number'], self.job['job_card_number'])
        self.assertIn(self.job['job_card_number'], invoice['bill_description'])

        [item] = invoice['line_items']
        self.assertEqual(item['description'], 'Handling Fees')
        self.assertEqual(item['quantity'], 1)
        self.assertEqual(Decimal(item['amount']), Decimal('100'))

        [tax] = invoice['taxes']
        self.assertEqual(tax['name'], 'VAT')
        self.assertEqual(Decimal(tax['rate']), Decimal('15'))
        self.assertEqual(Decimal(tax['amount']), Decimal('15'))
        self.assertTrue(tax['id'])
        self.assertTotals(invoice, '100', '15', '115')

        issue_date = date.fromisoformat(invoice['issue_date'])
        self.assertEqual(date.fromisoformat(invoice['due_date']), issue_date + timedelta(days=30))
        self.assertEqual(invoice['terms'], 'Payment due within 30 days.')

    def test_invoice_numbers_are_sequential(self):
        self.assertEqual(self.create_invoice()['invoice_number'], 'INV-0001')
        self.assertEqual(self.create_invoice()['invoice_number'], 'INV-0002')

    def test_create_for_missing_job(self):
        response = self.client.post('/api/jobs/999/invoices')
        self.assertEqual(response.status_code, 404)

    def test_add_line_item_updates_tax(self):
        """Test VAT follows a newly added line item"""
        invoice = self.create_invoice()
        response = self.client.post(f"/api/invoices/{invoice['id']}/line-items", json={
            'description': 'Battery', 'quantity': 2, 'unit_price': '50',
        })
        self.assertEqual(response.status_code, 201)
        body = response.get_json()
        self.assertEqual(len(body['line_items']), 2)
        self.assertEqual(Decimal(body['taxes'][0]['amount']), Decimal('30'))
        self.assertTotals(body, '200', '30', '230')

    def test_update_line_item_recomputes_amount(self):
        invoice = self.create_invoice()
        item_id = invoice['line_items'][0]['id']
        response = self.client.patch(f"/api/invoices/{invoice['id']}/line-items/{item_id}",
                                     json={'quantity': 3, 'amount': '1'})
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(Decimal(body['line_items'][0]['amount']), Decimal('300'))
        self.assertTotals(body, '300', '45', '345')

    def test_unknown_line_item_is_left_alone(self):
        invoice = self.create_invoice()
        response = self.client.patch(f"/api/invoices/{invoice['id']}/line-items/nope", json={'quantity': 4})
        self.assertEqual(response.status_code, 200)
        self.assertTotals(response.get_json(), '100', '15', '115')

    def test_removing_last_item_zeroes_totals(self):
        """Test an empty invoice has zero tax and total"""
        invoice = self.create_invoice()
        item_id = invoice['line_items'][0]['id']
        response = self.client.delete(f"/api/invoices/{invoice['id']}/line-items/{item_id}")
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(body['line_items'], [])
        self.assertEqual(Decimal(body['taxes'][0]['amount']), Decimal('0'))
        self.assertTotals(body, '0', '0', '0')

    def test_tax_edits_by_id(self):
        """Test taxes are addressed by id, not position"""
        invoice = self.create_invoice()
        response = self.client.post(f"/api/invoices/{invoice['id']}/taxes", json={'name': 'Levy', 'rate': '5'})
        self.assertEqual(response.status_code, 201)
        body = response.get_json()
        self.assertTotals(body, '100', '20', '120')
        vat_id, levy_id = body['taxes'][0]['id'], body['taxes'][1]['id']

        response = self.client.delete(f"/api/invoices/{invoice['id']}/taxes/{vat_id}")
        self.assertEqual([tax['name'] for tax in response.get_json()['taxes']], ['Levy'])

        response = self.client.patch(f"/api/invoices/{invoice['id']}/taxes/{levy_id}", json={'rate': '10'})
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(Decimal(body['taxes'][0]['amount']), Decimal('10'))
        self.assertTotals(body, '100', '10', '110')

    def test_edit_validation(self):
        """Test out-of-range quantities, prices and rates are rejected"""
        invoice = self.create_invoice()
        base = f"/api/invoices/{invoice['id']}"
        item_id = invoice['line_items'][0]['id']
        tax_id = invoice['taxes'][0]['id']

        response = self.client.post(f"{base}/line-items", json={'description': 'x', 'quantity': 0, 'unit_price': '1'})
        self.assertEqual(response.status_code, 400)
        self.assertIn('quantity', response.get_json())

        response = self.client.post(f"{base}/line-items", json={'description': 'x', 'quantity': 1, 'unit_price': '-1'})
        self.assertEqual(response.status_code, 400)

        response = self.client.patch(f"{base}/line-items/{item_id}", json={'quantity': -2})
        self.assertEqual(response.status_code, 400)

        response = self.client.post(f"{base}/taxes", json={'name': 'Bad', 'rate': '150'})
        self.assertEqual(response.status_code, 400)
        self.assertIn('rate', response.get_json())

        response = self.client.patch(f"{base}/taxes/{tax_id}", json={'rate': '-1'})
        self.assertEqual(response.status_code, 400)

        # nothing was persisted
        self.assertTotals(self.client.get(base).get_json(), '100', '15', '115')

    def test_edit_missing_invoice(self):
        response = self.client.post('/api/invoices/999/line-items',
                                    json={'description': 'x', 'quantity': 1, 'unit_price': '1'})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.client.get('/api/invoices/999').status_code, 404)

    def test_put_replaces_lists_and_header(self):
        """Test wholesale replacement recalculates every total"""
        invoice = self.create_invoice()
        response = self.client.put(f"/api/invoices/{invoice['id']}", json={
            'status': 'Sent',
            'notes': 'Customer pays on pickup',
            'line_items': [
                {'description': 'Screen', 'quantity': 1, 'unit_price': '80.00', 'amount': '999'},
                {'description': 'Labour', 'quantity': 2, 'unit_price': '10.00'},
            ],
            'taxes': [{'name': 'GST', 'rate': '10'}],
        })
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(body['status'], 'Sent')
        self.assertEqual(body['notes'], 'Customer pays on pickup')
        self.assertEqual([Decimal(item['amount']) for item in body['line_items']], [Decimal('80'), Decimal('20')])
        self.assertTotals(body, '100', '10', '110')
        self.assertTrue(all(item['id'] for item in body['line_items']))

    def test_put_rejects_bad_dates_and_status(self):
        invoice = self.create_invoice()
        response = self.client.put(f"/api/invoices/{invoice['id']}", json={
            'issue_date': '2025-03-10', 'due_date': '2025-03-01',
        })
        self.assertEqual(response.status_code, 400)
        self.assertIn('due_date', response.get_json())

        response = self.client.put(f"/api/invoices/{invoice['id']}", json={'status': 'Lost'})
        self.assertEqual(response.status_code, 400)

    def test_list_and_delete(self):
        invoice = self.create_invoice()
        response = self.client.get(f"/api/invoices?job_id={self.job['id']}")
        self.assertEqual([row['id'] for row in response.get_json()], [invoice['id']])

        response = self.client.get('/api/invoices?job_id=999')
        self.assertEqual(response.get_json(), [])

        self.assertEqual(self.client.delete(f"/api/invoices/{invoice['id']}").status_code, 200)
        self.assertEqual(self.client.get(f"/api/invoices/{invoice['id']}").status_code, 404)
        self.assertEqual(self.client.delete(f"/api/invoices/{invoice['id']}").status_code, 404)

    def test_invoices_of_deleted_jobs_are_hidden(self):
        """Test a deleted job's invoice can no longer be read or edited"""
        invoice = self.create_invoice()
        item_id = invoice['line_items'][0]['id']
        tax_id = invoice['taxes'][0]['id']
        base = f"/api/invoices/{invoice['id']}"
        self.client.delete(f"/api/jobs/{self.job['id']}")

        self.assertEqual(self.client.get('/api/invoices').get_json(), [])
        self.assertEqual(self.client.get(base).status_code, 404)
        self.assertEqual(self.client.get(f"{base}/print").status_code, 404)
        self.assertEqual(self.client.put(base, json={'status': 'Sent'}).status_code, 404)
        response = self.client.post(f"{base}/line-items",
                                    json={'description': 'x', 'quantity': 1, 'unit_price': '10'})
        self.assertEqual(response.status_code, 404)
        response = self.client.patch(f"{base}/line-items/{item_id}", json={'quantity': 3})
        self.assertEqual(response.status_code, 404)
        response = self.client.patch(f"{base}/taxes/{tax_id}", json={'rate': '20'})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.client.delete(base).status_code, 404)

        stored = db.session.get(Invoice, invoice['id'])
        self.assertEqual(stored.total, Decimal('115.00'))
        self.assertEqual(len(stored.line_items), 1)

    def test_put_rejects_duplicate_ids(self):
        """Test replacement lists cannot reuse an id"""
        invoice = self.create_invoice()
        base = f"/api/invoices/{invoice['id']}"
        response = self.client.put(base, json={'line_items': [
            {'id': 'dup', 'description': 'a', 'quantity': 1, 'unit_price': '10'},
            {'id': 'dup', 'description': 'b', 'quantity': 2, 'unit_price': '10'},
        ]})
        self.assertEqual(response.status_code, 400)
        self.assertIn('line_items', response.get_json())

        response = self.client.put(base, json={'taxes': [
            {'id': 't1', 'name': 'VAT', 'rate': '15'},
            {'id': 't1', 'name': 'Levy', 'rate': '5'},
        ]})
        self.assertEqual(response.status_code, 400)
        self.assertIn('taxes', response.get_json())

        self.assertTotals(self.client.get(base).get_json(), '100', '15', '115')

    def test_put_keeps_distinct_ids_addressable(self):
        invoice = self.create_invoice()
        base = f"/api/invoices/{invoice['id']}"
        self.client.put(base, json={'line_items': [
            {'id': 'a', 'description': 'a', 'quantity': 1, 'unit_price': '10'},
            {'id': 'b', 'description': 'b', 'quantity': 2, 'unit_price': '10'},
        ]})
        body = self.client.patch(f"{base}/line-items/a", json={'quantity': 3}).get_json()
        amounts = [(item['id'], Decimal(item['amount'])) for item in body['line_items']]
        self.assertEqual(amounts, [('a', Decimal('30')), ('b', Decimal('20'))])
        self.assertEqual(Decimal(body['subtotal']), Decimal('50'))

    def test_print_context(self):
        """Test the print bundle includes invoice, job and company"""
        invoice = self.create_invoice()
        response = self.client.get(f"/api/invoices/{invoice['id']}/print")
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertIsNone(body['company'])
        self.assertEqual(body['job']['job_card_number'], self.job['job_card_number'])
        self.assertEqual(body['invoice']['invoice_number'], 'INV-0001')

        self.client.put('/api/company', json={
            'name': 'Fix-It Shop', 'address': '1 Main St', 'phone': '555 0100', 'email': 'shop@example.com',
        })
        body = self.client.get(f"/api/invoices/{invoice['id']}/print").get_json()
        self.assertEqual(body['company']['name'], 'Fix-It Shop')

        self.assertEqual(self.client.get('/api/invoices/999/print').status_code, 404)

    def test_legacy_rows_get_ids_on_read(self):
        """Test stored entries without ids become addressable and consistent"""
        legacy = Invoice(
            invoice_number='INV-0100',
            job_id=self.job['id'],
            bill_description='Imported invoice',
            status='Sent',
            issue_date=date(2024, 1, 5),
            line_items=[{'description': 'Repair', 'quantity': 2, 'unit_price': '25.00'}],
            # totals were never filled in for imported rows
            taxes=[{'name': 'VAT', 'rate': '15', 'amount': '0'}],
            subtotal=Decimal('0.00'),
            tax_total=Decimal('0.00'),
            bill_amount=Decimal('0.00'),
            total=Decimal('0.00'),
        )
        db.session.add(legacy)
        db.session.commit()

        first = self.client.get(f"/api/invoices/{legacy.id}").get_json()
        tax_id = first['taxes'][0]['id']
        self.assertTrue(tax_id)
        self.assertEqual(Decimal(first['line_items'][0]['amount']), Decimal('50'))
        self.assertEqual(Decimal(first['taxes'][0]['amount']), Decimal('7.5'))
        self.assertTotals(first, '50', '7.50', '57.50')

        second = self.client.get(f"/api/invoices/{legacy.id}").get_json()
        self.assertEqual(second['taxes'][0]['id'], tax_id)

        response = self.client.patch(f"/api/invoices/{legacy.id}/taxes/{tax_id}", json={'rate': '20'})
        self.assertTotals(response.get_json(), '50', '10', '60')
