import io
import logging
import random
import time
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pandas as pd
from openpyxl.styles import Font, PatternFill, Border, Side

from models import Transaction, Purchase, PAYMENT_METHODS, ROLES, to_int
from storage import SheetStorage, ADMIN_PIN_KEY, CASHIER_PIN_KEY, RESET_MODELS

logger = logging.getLogger(__name__)

ALL_CATEGORIES = 'Semua'
DEFAULT_CATEGORY = 'Teh'
MIN_PIN_LENGTH = 4
RECENT_ACTIVITY_LIMIT = 10
PERIODS = ('all', 'today', 'month')
LEDGER_MODES = ('sales', 'purchases')
PIN_KEYS = {'admin': ADMIN_PIN_KEY, 'cashier': CASHIER_PIN_KEY}
DEFAULT_TZ = "Asia/Jakarta"

SYNC_WARNING = "Tersimpan lokal, tetapi gagal sinkron ke Google Sheet."


def now_iso():
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def new_id():
    return str(int(time.time() * 1000))


def parse_date(value):
    """Best effort: sheet dates are ISO strings, but not always the same flavour."""
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def local_time(value, tz_name=DEFAULT_TZ):
    """Stored dates stay UTC; screens and reports show the outlet's wall clock."""
    when = parse_date(value)
    if when.year == datetime.min.year:
        return when
    return when.astimezone(ZoneInfo(tz_name))


def format_rupiah(amount):
    return "Rp " + f"{to_int(amount):,}".replace(',', '.')


class TokoManager:
    def __init__(self, storage=None, tz_name=DEFAULT_TZ):
        self.storage = storage or SheetStorage()
        self.tz_name = tz_name

    # --- LOGIN ---
    def login(self, role, pin):
        if role not in ROLES or not pin:
            return False
        settings = self.storage.fetch_settings()
        expected = settings['adminPin'] if role == 'admin' else settings['cashierPin']
        return str(pin) == str(expected)

    def _local_day(self, value):
        if isinstance(value, datetime):
            value = value.isoformat()
        return local_time(value, self.tz_name).strftime('%Y-%m-%d')

    # --- DASHBOARD ---
    def dashboard(self, transactions, purchases, now=None):
        today = self._local_day(now or datetime.now(timezone.utc))
        revenue = sum(t.total for t in transactions)
        expense = sum(p.total for p in purchases)

        activity = [
            {'id': t.id, 'name': t.product_name, 'desc': f"{t.quantity} item",
             'total': t.total, 'date': t.date, 'type': 'sale'}
            for t in transactions
        ] + [
            {'id': p.id, 'name': p.item_name, 'desc': p.supplier,
             'total': p.total, 'date': p.date, 'type': 'expense'}
            for p in purchases
        ]
        activity.sort(key=lambda a: parse_date(a['date']), reverse=True)

        return {
            'revenue': revenue,
            'items': sum(t.quantity for t in transactions),
            'expense': expense,
            'balance': revenue - expense,
            'today_revenue': sum(t.total for t in transactions if self._local_day(t.date) == today),
            'recent': activity[:RECENT_ACTIVITY_LIMIT],
        }

    # --- CATALOG ---
    def categories(self, products):
        cats = []
        for p in products:
            if p.category not in cats:
                cats.append(p.category)
        return [ALL_CATEGORIES] + cats

    def filter_products(self, products, category):
        if not category or category == ALL_CATEGORIES:
            return list(products)
        return [p for p in products if p.category == category]

    def save_product(self, name, price, category=DEFAULT_CATEGORY, product_id=None):
        name = (name or '').strip()
        price = to_int(price, default=0)
        if not name:
            return False, "Nama produk wajib diisi!"
        if price <= 0:
            return False, "Harga harus lebih dari 0!"

        products = self.storage.fetch_products()
        new_row = [product_id or new_id(), name, price, (category or DEFAULT_CATEGORY).strip()]
        rows = [p.as_row() for p in products]
        if product_id and any(r[0] == product_id for r in rows):
            rows = [new_row if r[0] == product_id else r for r in rows]
            msg = f"Produk {name} diperbarui."
        else:
            rows.append(new_row)
            msg = f"Produk {name} ditambahkan."

        if not self.storage.save_products(rows):
            return False, SYNC_WARNING
        return True, msg

    def delete_product(self, product_id):
        products = self.storage.fetch_products()
        rows = [p.as_row() for p in products if p.id != product_id]
        if len(rows) == len(products):
            return False, "Produk tidak ditemukan"
        if not self.storage.save_products(rows):
            return False, SYNC_WARNING
        return True, "Produk dihapus."

    # --- CUPS ---
    def add_cup(self, name, stock):
        name = (name or '').strip()
        if not name or stock in (None, ''):
            return False, "Nama dan stok wajib diisi!"
        stock = to_int(stock, default=-1)
        if stock < 0:
            return False, "Stok tidak valid."

        rows = [c.as_row() for c in self.storage.fetch_cups()]
        rows.append([new_id(), name, stock])
        if not self.storage.save_cups(rows):
            return False, "Gagal simpan ke cloud. " + SYNC_WARNING
        return True, f"Cup {name} ditambahkan."

    def delete_cup(self, cup_id):
        cups = self.storage.fetch_cups()
        rows = [c.as_row() for c in cups if c.id != cup_id]
        if len(rows) == len(cups):
            return False, "Cup tidak ditemukan"
        if not self.storage.save_cups(rows):
            return False, SYNC_WARNING
        return True, "Jenis cup dihapus."

    def restock_cup(self, cup_id, amount):
        amount = to_int(amount, default=0)
        if amount <= 0:
            return False, "Jumlah restock harus lebih dari 0."
        cups = self.storage.fetch_cups()
        if not any(c.id == cup_id for c in cups):
            return False, "Cup tidak ditemukan"

        rows = [[c.id, c.name, c.stock + amount if c.id == cup_id else c.stock] for c in cups]
        if not self.storage.save_cups(rows):
            return False, SYNC_WARNING
        return True, f"Stok cup bertambah {amount}."

    # --- CORE SALE ---
    def checkout(self, cart_data):
        items = cart_data.get('items')
        if not isinstance(items, list):
            return False, "Keranjang kosong."
        lines = {}
        for item in items:
            if not isinstance(item, dict):
                continue
            name = str(item.get('name') or '').strip()
            qty = to_int(item.get('quantity'), default=0)
            if name and qty > 0:
                lines[name] = lines.get(name, 0) + qty
        if not lines:
            return False, "Keranjang kosong."

        payment_method = cart_data.get('payment_method') or 'Cash'
        if payment_method not in PAYMENT_METHODS:
            return False, f"Metode pembayaran {payment_method} tidak dikenal."

        cups = self.storage.fetch_cups()
        if not cups:
            return False, "Belum ada jenis cup yang ditambahkan di Admin Panel."
        cup_id = cart_data.get('cup_id')
        if cup_id is None or str(cup_id).strip() == '':
            return False, "Pilih jenis cup terlebih dahulu!"
        cup_id = str(cup_id).strip()
        chosen = next((c for c in cups if c.id == cup_id), None)
        if chosen is None:
            return False, "Cup tidak ditemukan"

        catalog = {p.name: p for p in self.storage.fetch_products()}
        missing = [name for name in lines if name not in catalog]
        if missing:
            return False, f"Produk {', '.join(missing)} tidak ada di katalog."

        total_items = sum(lines.values())
        if chosen.stock < total_items:
            return False, f"Stok {chosen.name} tidak mencukupi! Sisa: {chosen.stock}"

        batch_id = new_id()
        date = now_iso()
        synced = True
        grand_total = 0
        used_ids = set()
        for name, qty in lines.items():
            product = catalog[name]
            line_id = batch_id + f"{random.randint(0, 999):03d}"
            while line_id in used_ids:
                line_id = batch_id + f"{random.randint(0, 999):03d}"
            used_ids.add(line_id)
            transaction = Transaction(
                id=line_id,
                date=date,
                product_name=product.name,
                category=product.category,
                quantity=qty,
                price=product.price,
                total=product.price * qty,
                payment_method=payment_method,
                cup_id=cup_id,
            )
            grand_total += transaction.total
            synced = self.storage.add_transaction(transaction) and synced

        rows = [[c.id, c.name, c.stock - total_items if c.id == cup_id else c.stock] for c in cups]
        synced = self.storage.save_cups(rows) and synced

        logger.info("Checkout %s: %d item, %s (%s)", batch_id, total_items, grand_total, payment_method)
        msg = f"Transaksi berhasil! Total: {format_rupiah(grand_total)}"
        if not synced:
            msg += f" {SYNC_WARNING}"
        return True, msg

    # --- PURCHASES ---
    def add_purchase(self, form):
        item_name = (form.get('item_name') or '').strip()
        qty = to_int(form.get('quantity'), default=0)
        price = to_int(form.get('price'), default=0)
        if not item_name:
            return False, "Nama barang wajib diisi!"
        if qty <= 0 or price <= 0:
            return False, "Jumlah dan harga harus lebih dari 0!"

        purchase = Purchase(
            id=new_id(),
            date=now_iso(),
            item_name=item_name,
            supplier=(form.get('supplier') or '').strip() or '-',
            quantity=qty,
            price=price,
            total=qty * price,
        )
        if not self.storage.add_purchase(purchase):
            return False, "Gagal menyimpan pembelian ke cloud. " + SYNC_WARNING
        return True, "Pembelian berhasil disimpan!"

    # --- SETTINGS ---
    def change_pin(self, role, pin, confirm):
        if role not in PIN_KEYS:
            return False, "Role tidak dikenal"
        pin = (pin or '').strip()
        if len(pin) < MIN_PIN_LENGTH:
            return False, f"PIN minimal {MIN_PIN_LENGTH} digit!"
        if not pin.isdigit():
            return False, "PIN hanya boleh berisi angka!"
        if pin != (confirm or '').strip():
            return False, "Konfirmasi PIN tidak cocok!"
        if not self.storage.save_setting(PIN_KEYS[role], pin):
            return False, "Gagal memperbarui PIN ke cloud."
        return True, f"PIN {role.upper()} berhasil diperbarui!"

    def save_api_url(self, url):
        url = (url or '').strip()
        if not url:
            return False, "Masukkan URL Web App!"
        self.storage.save_api_url(url)
        return True, "Konfigurasi disimpan!"

    def reset_data(self, kind):
        if kind not in RESET_MODELS:
            return False, "Jenis data tidak dikenal"
        label = 'Penjualan' if kind == 'sales' else 'Pembelian'
        if not self.storage.reset_data(kind):
            return False, "Gagal me-reset Cloud."
        logger.warning("Data %s dikosongkan", kind)
        return True, f"Data {label} berhasil dibersihkan!"

    # --- SHEET / LEDGER ---
    def ledger(self, transactions, purchases, mode='sales', period='all', search='', now=None):
        if mode not in LEDGER_MODES:
            mode = 'sales'
        rows = list(transactions if mode == 'sales' else purchases)

        today = self._local_day(now or datetime.now(timezone.utc))
        if period == 'today':
            rows = [r for r in rows if self._local_day(r.date) == today]
        elif period == 'month':
            rows = [r for r in rows if self._local_day(r.date)[:7] == today[:7]]

        term = (search or '').strip().lower()
        if term:
            if mode == 'sales':
                fields = lambda t: (t.product_name, t.category, t.id, t.payment_method or '')
            else:
                fields = lambda p: (p.item_name, p.supplier, p.id)
            rows = [r for r in rows if any(term in str(f).lower() for f in fields(r))]

        return {
            'mode': mode,
            'rows': rows,
            'total_amount': sum(r.total for r in rows),
            'total_qty': sum(r.quantity for r in rows),
        }

    # --- EXCEL EXPORT ---
    def ledger_excel(self, ledger):
        rows = ledger['rows']
        if not rows:
            return None

        df = self._ledger_dataframe(ledger)
        sheet_name = 'Penjualan' if ledger['mode'] == 'sales' else 'Pembelian'
        output = io.BytesIO()
        with pd.ExcelWriter(output, engine='openpyxl') as writer:
            df.to_excel(writer, sheet_name=sheet_name, index=False)
            self._style_ledger_sheet(writer.sheets[sheet_name])
        output.seek(0)
        return output

    def _ledger_dataframe(self, ledger):
        data = []
        for r in ledger['rows']:
            when = local_time(r.date, self.tz_name)
            row = {
                "ID": r.id,
                "Tanggal": when.strftime("%d/%m/%Y"),
                "Jam": when.strftime("%H:%M"),
            }
            if ledger['mode'] == 'sales':
                row.update({"Produk": r.product_name, "Kategori": r.category,
                            "Metode": r.payment_method or 'Cash'})
            else:
                row.update({"Barang": r.item_name, "Supplier": r.supplier})
            row.update({"Qty": r.quantity, "Harga (Rp)": r.price, "Total (Rp)": r.total,
                        "Jenis Baris": "Item"})
            data.append(row)

        grand_total = {k: "" for k in data[0]}
        grand_total.update({"ID": "TOTAL", "Qty": ledger['total_qty'],
                            "Total (Rp)": ledger['total_amount'], "Jenis Baris": "GranTotal"})
        data.append(grand_total)
        return pd.DataFrame(data)

    def _style_ledger_sheet(self, ws):
        """Header in amber, total row inverted, then drop the marker column."""
        border = Border(left=Side(style='thin'), right=Side(style='thin'),
                        top=Side(style='thin'), bottom=Side(style='thin'))
        fill_header = PatternFill("solid", fgColor="FFC000")
        fill_total = PatternFill("solid", fgColor="000000")
        font_total = Font(bold=True, color="FFFFFF")
        font_bold = Font(bold=True)

        marker_col = None
        for cell in ws[1]:
            cell.fill = fill_header
            cell.font = font_bold
            cell.border = border
            if cell.value == "Jenis Baris":
                marker_col = cell.column

        for row in ws.iter_rows(min_row=2, max_row=ws.max_row):
            for cell in row:
                cell.border = border
            if marker_col and row[marker_col - 1].value == "GranTotal":
                for cell in row:
                    cell.fill = fill_total
                    cell.font = font_total

        if marker_col:
            ws.delete_cols(marker_col)
        ws.column_dimensions['A'].width = 18
        ws.column_dimensions['D'].width = 30
