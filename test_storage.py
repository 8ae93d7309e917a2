#!/usr/bin/env python3
"""
Unit tests for the remote-first data access layer.
The Web App is replaced by mocks of requests.get / requests.post.
"""

import json
import os
import unittest
from unittest.mock import Mock, patch

import requests

os.environ['TOKOSHEET_DATABASE_URI'] = 'sqlite://'

from app import app
from models import db, Product, CupItem, Transaction, Purchase
from sheet_client import SheetClient, SheetError
from storage import SheetStorage

URL = 'https://script.google.com/macros/s/test/exec'


def fake_response(body, status=200):
    response = Mock()
    response.status_code = status
    response.json.return_value = body
    if status >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status}")
    else:
        response.raise_for_status.return_value = None
    return response


class TestSheetClient(unittest.TestCase):

    @patch('sheet_client.requests.get')
    def test_get_sends_type_and_cache_buster(self, mock_get):
        mock_get.return_value = fake_response({'status': 'success', 'data': []})
        SheetClient(URL, timeout=5).rows('cups')

        args, kwargs = mock_get.call_args
        self.assertEqual(args[0], URL)
        self.assertEqual(kwargs['params']['type'], 'cups')
        self.assertIn('t', kwargs['params'])
        self.assertEqual(kwargs['timeout'], 5)

    @patch('sheet_client.requests.post')
    def test_post_is_plain_text_json(self, mock_post):
        mock_post.return_value = fake_response({'status': 'success'})
        SheetClient(URL).post('update_setting', key='ADMIN_PIN', value='9999')

        kwargs = mock_post.call_args.kwargs
        self.assertEqual(kwargs['headers']['Content-Type'], 'text/plain;charset=utf-8')
        self.assertEqual(json.loads(kwargs['data']),
                         {'action': 'update_setting', 'key': 'ADMIN_PIN', 'value': '9999'})

    @patch('sheet_client.requests.post')
    def test_error_status_raises(self, mock_post):
        mock_post.return_value = fake_response({'status': 'error', 'message': 'Sheet locked'})
        with self.assertRaises(SheetError) as ctx:
            SheetClient(URL).post('add_sale', data=[])
        self.assertIn('Sheet locked', str(ctx.exception))

    @patch('sheet_client.requests.get')
    def test_transport_errors_are_wrapped(self, mock_get):
        mock_get.side_effect = requests.exceptions.ConnectionError("down")
        with self.assertRaises(SheetError):
            SheetClient(URL).get('sales')

        mock_get.side_effect = None
        mock_get.return_value = fake_response({}, status=500)
        with self.assertRaises(SheetError):
            SheetClient(URL).get('sales')

    @patch('sheet_client.requests.get')
    def test_non_json_body_raises(self, mock_get):
        response = fake_response(None)
        response.json.side_effect = ValueError("not json")
        mock_get.return_value = response
        with self.assertRaises(SheetError):
            SheetClient(URL).get('products')


class TestSheetStorage(unittest.TestCase):

    def setUp(self):
        self.ctx = app.app_context()
        self.ctx.push()
        db.drop_all()
        db.create_all()
        self.storage = SheetStorage()

    def tearDown(self):
        db.session.remove()
        self.ctx.pop()

    def test_local_only_without_url(self):
        with patch('sheet_client.requests.get') as mock_get, patch('sheet_client.requests.post') as mock_post:
            self.assertTrue(self.storage.save_products([['p1', 'Es Teh', 5000, 'Teh']]))
            self.assertEqual([p.name for p in self.storage.fetch_products()], ['Es Teh'])
            mock_get.assert_not_called()
            mock_post.assert_not_called()

    @patch('sheet_client.requests.get')
    def test_fetch_products_refreshes_cache(self, mock_get):
        self.storage.save_api_url(URL)
        mock_get.return_value = fake_response({'status': 'success', 'data': [
            ['p1', 'Kopi Susu', '18000', 'Kopi'],
            ['', 'Tanpa ID', 1000, 'Teh'],
            ['p2', 'Es Teh', 15000.0, 'Teh'],
        ]})
        products = self.storage.fetch_products()

        self.assertEqual([p.id for p in products], ['p1', 'p2'])
        self.assertEqual(products[0].price, 18000)
        self.assertEqual(Product.query.count(), 2)

    @patch('sheet_client.requests.get')
    def test_fetch_falls_back_to_cache(self, mock_get):
        self.storage.save_cups([['c1', 'Cup 16oz', 40]])
        self.storage.save_api_url(URL)
        mock_get.side_effect = requests.exceptions.Timeout("slow")

        cups = self.storage.fetch_cups()
        self.assertEqual([(c.id, c.stock) for c in cups], [('c1', 40)])

    @patch('sheet_client.requests.get')
    def test_malformed_row_falls_back_to_cache(self, mock_get):
        self.storage.save_cups([['c1', 'Cup 16oz', 40]])
        self.storage.save_api_url(URL)
        mock_get.return_value = fake_response({'status': 'success', 'data': [['c2', 'Cup', 3], None]})

        self.assertEqual([c.id for c in self.storage.fetch_cups()], ['c1'])
        self.assertEqual(self.storage.fetch_transactions(), [])

    @patch('sheet_client.requests.post')
    def test_save_cups_posts_whole_list(self, mock_post):
        self.storage.save_api_url(URL)
        mock_post.return_value = fake_response({'status': 'success'})

        ok = self.storage.save_cups([['c1', 'Cup 16oz', 40], ['c2', 'Cup 22oz', 3]])
        self.assertTrue(ok)
        body = json.loads(mock_post.call_args.kwargs['data'])
        self.assertEqual(body['action'], 'update_cups')
        self.assertEqual(body['data'], [['c1', 'Cup 16oz', 40], ['c2', 'Cup 22oz', 3]])

    @patch('sheet_client.requests.post')
    def test_failed_write_keeps_local_copy(self, mock_post):
        self.storage.save_api_url(URL)
        mock_post.side_effect = requests.exceptions.ConnectionError("offline")

        sale = Transaction(id='t1', date='2025-03-15T08:00:00.000Z', product_name='Es Teh',
                           category='Teh', quantity=1, price=5000, total=5000, payment_method='Cash')
        self.assertFalse(self.storage.add_transaction(sale))
        self.assertEqual(Transaction.query.count(), 1)

    @patch('sheet_client.requests.post')
    def test_add_purchase_posts_row(self, mock_post):
        self.storage.save_api_url(URL)
        mock_post.return_value = fake_response({'status': 'success'})

        purchase = Purchase(id='b1', date='2025-03-15T08:00:00.000Z', item_name='Gula',
                            supplier='-', quantity=2, price=14000, total=28000)
        self.assertTrue(self.storage.add_purchase(purchase))
        body = json.loads(mock_post.call_args.kwargs['data'])
        self.assertEqual(body, {'action': 'add_purchase',
                                'data': ['b1', '2025-03-15T08:00:00.000Z', 'Gula', '-', 2, 14000, 28000]})

    @patch('sheet_client.requests.get')
    def test_fetch_transactions_newest_first(self, mock_get):
        self.storage.save_api_url(URL)
        mock_get.return_value = fake_response({'status': 'success', 'data': [
            ['t1', '2025-03-01T08:00:00.000Z', 'Es Teh', 'Teh', 1, 15000, 15000, 'QRIS'],
            ['t2', '2025-03-02T08:00:00.000Z', 'Kopi Susu', 'Kopi', 2, 18000, 36000, ''],
            ['', '', '', '', '', '', '', ''],
        ]})
        sales = self.storage.fetch_transactions()

        self.assertEqual([t.id for t in sales], ['t2', 't1'])
        self.assertEqual(sales[0].payment_method, 'Cash')
        self.assertEqual(sales[1].payment_method, 'QRIS')

    @patch('sheet_client.requests.get')
    def test_fetch_settings_caches_remote_pins(self, mock_get):
        self.storage.save_api_url(URL)
        mock_get.return_value = fake_response({'status': 'success', 'adminPin': 4321, 'cashierPin': '5555'})
        self.assertEqual(self.storage.fetch_settings(), {'adminPin': '4321', 'cashierPin': '5555'})

        mock_get.side_effect = requests.exceptions.ConnectionError("offline")
        self.assertEqual(self.storage.fetch_settings(), {'adminPin': '4321', 'cashierPin': '5555'})

    @patch('sheet_client.requests.post')
    def test_reset_needs_success_reply(self, mock_post):
        self.storage.save_api_url(URL)
        mock_post.return_value = fake_response({'status': 'success'})
        self.assertTrue(self.storage.reset_data('purchases'))
        self.assertEqual(json.loads(mock_post.call_args.kwargs['data']),
                         {'action': 'reset_data', 'type': 'purchases'})

        mock_post.return_value = fake_response({'ok': True})
        self.assertFalse(self.storage.reset_data('sales'))


if __name__ == '__main__':
    unittest.main(verbosity=2)
