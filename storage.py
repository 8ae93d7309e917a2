import logging

from flask import current_app

from models import db, Transaction, Purchase, Product, CupItem, Setting
from sheet_client import SheetClient, SheetError, DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)

API_URL_KEY = 'API_URL'
ADMIN_PIN_KEY = 'ADMIN_PIN'
CASHIER_PIN_KEY = 'CASHIER_PIN'
DEFAULT_PINS = {ADMIN_PIN_KEY: '1234', CASHIER_PIN_KEY: '0000'}

RESET_MODELS = {'sales': Transaction, 'purchases': Purchase}


class SheetStorage:
    """Remote spreadsheet first, local SQLite cache as fallback.

    Reads refresh the cache when the Web App answers and fall back to it when
    it doesn't (or when no URL is configured). Writes always hit the cache
    first; a failed remote write is logged and reported as False.
    """

    # --- LOCAL KEY/VALUE ---
    def _get_local(self, key, default=''):
        setting = db.session.get(Setting, key)
        return setting.value if setting and setting.value else default

    def _set_local(self, key, value):
        setting = db.session.get(Setting, key)
        if setting:
            setting.value = value
        else:
            db.session.add(Setting(key=key, value=value))
        db.session.commit()

    def _replace_local(self, model, rows):
        # Sheet rows can repeat an id; the first one wins.
        seen = set()
        objs = []
        for row in rows:
            obj = model.from_row(row)
            if obj.id in seen:
                continue
            seen.add(obj.id)
            objs.append(obj)
        model.query.delete()
        db.session.add_all(objs)
        db.session.commit()
        return objs

    def _client(self):
        url = self.get_api_url()
        if not url:
            return None
        timeout = current_app.config.get('SHEET_TIMEOUT', DEFAULT_TIMEOUT)
        return SheetClient(url, timeout=timeout)

    # --- WEB APP URL ---
    def get_api_url(self):
        return self._get_local(API_URL_KEY).strip()

    def save_api_url(self, url):
        self._set_local(API_URL_KEY, url.strip())

    def is_connected(self):
        return bool(self.get_api_url())

    # --- SETTINGS (PIN) ---
    def fetch_settings(self):
        settings = {
            'adminPin': self._get_local(ADMIN_PIN_KEY, DEFAULT_PINS[ADMIN_PIN_KEY]),
            'cashierPin': self._get_local(CASHIER_PIN_KEY, DEFAULT_PINS[CASHIER_PIN_KEY]),
        }
        client = self._client()
        if client:
            try:
                body = client.get('settings')
                admin_pin = str(body.get('adminPin') or settings['adminPin'])
                cashier_pin = str(body.get('cashierPin') or settings['cashierPin'])
                self._set_local(ADMIN_PIN_KEY, admin_pin)
                self._set_local(CASHIER_PIN_KEY, cashier_pin)
                return {'adminPin': admin_pin, 'cashierPin': cashier_pin}
            except SheetError as e:
                logger.error("Gagal ambil settings dari cloud: %s", e)
        return settings

    def save_setting(self, key, value):
        self._set_local(key, value)
        client = self._client()
        if client:
            try:
                client.post('update_setting', key=key, value=value)
            except SheetError as e:
                logger.error("Gagal simpan %s ke cloud: %s", key, e)
                return False
        return True

    # --- CATALOG & CUPS (replaced wholesale) ---
    def _fetch_replaced(self, model, kind, keep):
        client = self._client()
        if client:
            try:
                rows = [r for r in client.rows(kind) if keep(r)]
                return self._replace_local(model, rows)
            except SheetError as e:
                logger.error("Gagal mengambil %s dari Sheet, memakai cache lokal: %s", kind, e)
        return model.query.all()

    def _save_replaced(self, model, action, rows):
        self._replace_local(model, rows)
        client = self._client()
        if client:
            try:
                client.post(action, data=[list(r) for r in rows])
            except SheetError as e:
                logger.error("Gagal sinkron %s ke cloud: %s", action, e)
                return False
        return True

    def fetch_products(self):
        return self._fetch_replaced(Product, 'products', lambda r: len(r) > 1 and r[0] and r[1])

    def save_products(self, rows):
        return self._save_replaced(Product, 'update_products', rows)

    def fetch_cups(self):
        return self._fetch_replaced(CupItem, 'cups', lambda r: len(r) > 1 and r[0] and r[1])

    def save_cups(self, rows):
        return self._save_replaced(CupItem, 'update_cups', rows)

    # --- LEDGERS (sales / purchases) ---
    def _fetch_ledger(self, model, kind):
        client = self._client()
        if client:
            try:
                rows = [r for r in client.rows(kind) if len(r) > 2 and r[0] and r[2]]
                # The sheet appends, newest last.
                rows.reverse()
                return self._replace_local(model, rows)
            except SheetError as e:
                logger.error("Gagal mengambil %s dari Sheet, memakai cache lokal: %s", kind, e)
        return model.query.order_by(model.date.desc()).all()

    def fetch_transactions(self):
        return self._fetch_ledger(Transaction, 'sales')

    def fetch_purchases(self):
        return self._fetch_ledger(Purchase, 'purchases')

    def _add_record(self, obj, action):
        db.session.add(obj)
        db.session.commit()
        client = self._client()
        if client:
            try:
                client.post(action, data=obj.as_row())
            except SheetError as e:
                logger.error("Gagal mengirim %s %s ke cloud: %s", action, obj.id, e)
                return False
        return True

    def add_transaction(self, transaction):
        return self._add_record(transaction, 'add_sale')

    def add_purchase(self, purchase):
        return self._add_record(purchase, 'add_purchase')

    # --- DANGER ZONE ---
    def reset_data(self, kind):
        model = RESET_MODELS[kind]
        model.query.delete()
        db.session.commit()
        client = self._client()
        if client:
            try:
                body = client.post('reset_data', type=kind)
            except SheetError as e:
                logger.error("Error reset cloud (%s): %s", kind, e)
                return False
            if body.get('status') != 'success':
                logger.error("Reset cloud (%s) tidak dikonfirmasi: %s", kind, body)
                return False
        return True
