from flask import Flask, render_template, request, redirect, url_for, flash, jsonify, send_file
from flask_login import LoginManager, login_user, logout_user, login_required, current_user
from models import db, Operator, ROLES, PAYMENT_METHODS
from toko import TokoManager, format_rupiah, local_time, now_iso, PERIODS, DEFAULT_CATEGORY, DEFAULT_TZ
import analyst
import logging
import os

logging.basicConfig(
    level=os.environ.get('TOKOSHEET_LOG_LEVEL', 'INFO'),
    format="[TOKOSHEET] %(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.secret_key = os.environ.get('TOKOSHEET_SECRET_KEY', 'tokosheet_rahasia_dev')

# DB Config (local cache of the sheet)
app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('TOKOSHEET_DATABASE_URI', 'sqlite:///tokosheet.db')
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['SHEET_TIMEOUT'] = float(os.environ.get('TOKOSHEET_SHEET_TIMEOUT', '15'))
app.config['OUTLET_TZ'] = os.environ.get('TOKOSHEET_TZ', DEFAULT_TZ)

db.init_app(app)
toko = TokoManager(tz_name=app.config['OUTLET_TZ'])

# --- LOGIN CONFIG ---
login_manager = LoginManager()
login_manager.init_app(app)
login_manager.login_view = 'login'
login_manager.login_message = "Silakan masuk terlebih dahulu."

@login_manager.user_loader
def load_user(user_id):
    return Operator(user_id) if user_id in ROLES else None

# --- NAV (tabs per role) ---
CASHIER_TABS = [
    ('dashboard', 'Beranda'),
    ('input_sale', 'Jual'),
    ('purchase', 'Beli'),
    ('sheet', 'Data'),
]
ADMIN_TABS = CASHIER_TABS + [
    ('ai_analyst', 'Analyst'),
    ('admin_panel', 'Admin'),
]

def nav_items(role):
    return ADMIN_TABS if role == 'admin' else CASHIER_TABS

@app.context_processor
def inject_nav():
    role = current_user.role if current_user.is_authenticated else None
    return {'nav_items': nav_items(role) if role else [], 'role': role}

@app.template_filter('rupiah')
def rupiah_filter(value):
    return format_rupiah(value)

@app.template_filter('jam')
def jam_filter(value):
    return local_time(value, toko.tz_name).strftime('%H:%M')

@app.template_filter('tanggal')
def tanggal_filter(value):
    return local_time(value, toko.tz_name).strftime('%d/%m/%Y')

# --- HELPERS ---
def load_ledgers():
    return toko.storage.fetch_transactions(), toko.storage.fetch_purchases()

# --- ACCESS ROUTES ---

@app.route('/login', methods=['GET', 'POST'])
def login():
    if request.method == 'POST':
        role = request.form.get('role', 'cashier')
        pin = request.form.get('pin', '')
        if toko.login(role, pin):
            login_user(Operator(role))
            logger.info("Login %s", role)
            return redirect(url_for('dashboard'))
        flash("PIN Salah!", "error")
    return render_template('login.html')

@app.route('/logout')
@login_required
def logout():
    logout_user()
    return redirect(url_for('login'))

@app.route('/')
def index():
    if current_user.is_authenticated:
        return redirect(url_for('dashboard'))
    return redirect(url_for('login'))

# --- DASHBOARD ---
@app.route('/dashboard')
@login_required
def dashboard():
    transactions, purchases = load_ledgers()
    return render_template('dashboard.html', stats=toko.dashboard(transactions, purchases))

# --- SALE (CASHIER) ---
@app.route('/input', methods=['GET', 'POST'])
@login_required
def input_sale():
    if request.is_json:
        cart = request.get_json(silent=True)
        ok, msg = toko.checkout(cart if isinstance(cart, dict) else {})
        if ok: return jsonify({"status": "ok", "msg": msg})
        else: return jsonify({"status": "error", "msg": msg}), 400

    products = toko.storage.fetch_products()
    category = request.args.get('category')
    return render_template('input.html',
                           products=toko.filter_products(products, category),
                           categories=toko.categories(products),
                           selected_category=category or 'Semua',
                           cups=toko.storage.fetch_cups(),
                           payment_methods=PAYMENT_METHODS)

# --- PURCHASES ---
@app.route('/purchase', methods=['GET', 'POST'])
@login_required
def purchase():
    if request.method == 'POST':
        ok, msg = toko.add_purchase(request.form)
        flash(msg, "success" if ok else "error")
        return redirect(url_for('purchase'))

    purchases = toko.storage.fetch_purchases()
    return render_template('purchase.html',
                           purchases=purchases,
                           total=sum(p.total for p in purchases))

# --- SHEET (LEDGER) ---
def current_ledger():
    transactions, purchases = load_ledgers()
    period = request.args.get('period', 'all')
    return toko.ledger(transactions, purchases,
                       mode=request.args.get('mode', 'sales'),
                       period=period if period in PERIODS else 'all',
                       search=request.args.get('q', ''))

@app.route('/sheet')
@login_required
def sheet():
    ledger = current_ledger()
    return render_template('sheet.html',
                           ledger=ledger,
                           period=request.args.get('period', 'all'),
                           search=request.args.get('q', ''),
                           connected=toko.storage.is_connected())

@app.route('/sheet/export')
@login_required
def export_sheet():
    ledger = current_ledger()
    report = toko.ledger_excel(ledger)
    if report:
        name = f"TokoSheet_{ledger['mode']}_{local_time(now_iso(), toko.tz_name).date()}.xlsx"
        return send_file(report, as_attachment=True, download_name=name, mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet')
    flash("Tidak ada data untuk diekspor", "error")
    return redirect(url_for('sheet', **request.args))

# --- AI ANALYST (ADMIN) ---
@app.route('/analyst', methods=['GET', 'POST'])
@login_required
def ai_analyst():
    if not current_user.is_admin: return redirect(url_for('dashboard'))

    transactions, purchases = load_ledgers()
    question = ''
    answer = None
    if request.method == 'POST':
        question = request.form.get('question', '').strip()
        if question:
            answer = analyst.analyze_sales(transactions, question)

    return render_template('analyst.html',
                           stats=analyst.financial_stats(transactions, purchases),
                           suggestions=analyst.SUGGESTIONS,
                           question=question,
                           answer=answer)

# --- ADMIN PANEL ---
@app.route('/admin', methods=['GET', 'POST'])
@login_required
def admin_panel():
    if not current_user.is_admin: return redirect(url_for('dashboard'))

    if request.method == 'POST':
        action = request.form.get('action')

        if action == 'save_config':
            ok, msg = toko.save_api_url(request.form.get('api_url'))
        elif action == 'update_pin':
            ok, msg = toko.change_pin(request.form.get('target'),
                                      request.form.get('pin'),
                                      request.form.get('confirm_pin'))
        elif action == 'add_cup':
            ok, msg = toko.add_cup(request.form.get('name'), request.form.get('stock'))
        elif action == 'restock_cup':
            ok, msg = toko.restock_cup(request.form.get('cup_id'), request.form.get('amount'))
        elif action == 'delete_cup':
            ok, msg = toko.delete_cup(request.form.get('cup_id'))
        elif action == 'reset_data':
            ok, msg = toko.reset_data(request.form.get('type'))
        elif action == 'save_product':
            ok, msg = toko.save_product(request.form.get('name'),
                                        request.form.get('price'),
                                        request.form.get('category') or DEFAULT_CATEGORY,
                                        product_id=request.form.get('product_id') or None)
        elif action == 'delete_product':
            ok, msg = toko.delete_product(request.form.get('product_id'))
        else:
            ok, msg = False, "Aksi tidak dikenal"

        flash(msg, "success" if ok else "error")
        return redirect(url_for("admin_panel"))

    editing = None
    products = toko.storage.fetch_products()
    edit_id = request.args.get('edit')
    if edit_id:
        editing = next((p for p in products if p.id == edit_id), None)

    return render_template('admin.html',
                           api_url=toko.storage.get_api_url(),
                           products=products,
                           editing=editing,
                           cups=toko.storage.fetch_cups(),
                           default_category=DEFAULT_CATEGORY)

if __name__ == '__main__':
    with app.app_context():
        db.create_all()
    app.run(host='0.0.0.0', debug=os.environ.get('TOKOSHEET_DEBUG') == '1')
