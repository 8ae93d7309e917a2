from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin

db = SQLAlchemy()

ROLES = ('admin', 'cashier')
PAYMENT_METHODS = ('Cash', 'QRIS', 'Transfer')


def to_int(value, default=0):
    """Numeric cell from the sheet or a form: '18000', 18000.0, '' -> int."""
    try:
        return int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return default


# 1. ROLES (no user table: one PIN per role)
class Operator(UserMixin):
    def __init__(self, role):
        self.id = role
        self.role = role

    @property
    def is_admin(self):
        return self.role == 'admin'

    def __repr__(self):
        return f"<Operator {self.role}>"


# 2. SALES (one row per cart line)
class Transaction(db.Model):
    __tablename__ = 'sales'

    id = db.Column(db.String(40), primary_key=True)
    date = db.Column(db.String(40), nullable=False)  # ISO-8601, UTC
    product_name = db.Column(db.String(120), nullable=False)
    category = db.Column(db.String(80), default='')
    quantity = db.Column(db.Integer, default=0)
    price = db.Column(db.Integer, default=0)
    total = db.Column(db.Integer, default=0)
    payment_method = db.Column(db.String(20), default='Cash')
    cup_id = db.Column(db.String(40), nullable=True)  # soft tag, no FK

    def as_row(self):
        return [self.id, self.date, self.product_name, self.category,
                self.quantity, self.price, self.total, self.payment_method]

    @classmethod
    def from_row(cls, row):
        return cls(
            id=str(row[0]),
            date=str(row[1]),
            product_name=str(row[2]),
            category=str(row[3]) if len(row) > 3 else '',
            quantity=to_int(row[4] if len(row) > 4 else 0),
            price=to_int(row[5] if len(row) > 5 else 0),
            total=to_int(row[6] if len(row) > 6 else 0),
            payment_method=(row[7] if len(row) > 7 and row[7] else 'Cash'),
        )

    def to_dict(self):
        return {
            'id': self.id, 'date': self.date, 'productName': self.product_name,
            'category': self.category, 'quantity': self.quantity,
            'price': self.price, 'total': self.total,
            'paymentMethod': self.payment_method, 'cupId': self.cup_id,
        }


# 3. PURCHASES (expenses)
class Purchase(db.Model):
    __tablename__ = 'purchases'

    id = db.Column(db.String(40), primary_key=True)
    date = db.Column(db.String(40), nullable=False)
    item_name = db.Column(db.String(120), nullable=False)
    supplier = db.Column(db.String(120), default='-')
    quantity = db.Column(db.Integer, default=0)
    price = db.Column(db.Integer, default=0)
    total = db.Column(db.Integer, default=0)

    def as_row(self):
        return [self.id, self.date, self.item_name, self.supplier,
                self.quantity, self.price, self.total]

    @classmethod
    def from_row(cls, row):
        return cls(
            id=str(row[0]),
            date=str(row[1]),
            item_name=str(row[2]),
            supplier=str(row[3]) if len(row) > 3 else '-',
            quantity=to_int(row[4] if len(row) > 4 else 0),
            price=to_int(row[5] if len(row) > 5 else 0),
            total=to_int(row[6] if len(row) > 6 else 0),
        )

    def to_dict(self):
        return {
            'id': self.id, 'date': self.date, 'itemName': self.item_name,
            'supplier': self.supplier, 'quantity': self.quantity,
            'price': self.price, 'total': self.total,
        }


# 4. CATALOG
class Product(db.Model):
    __tablename__ = 'products'

    id = db.Column(db.String(40), primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    price = db.Column(db.Integer, default=0)
    category = db.Column(db.String(80), default='Teh')

    def as_row(self):
        return [self.id, self.name, self.price, self.category]

    @classmethod
    def from_row(cls, row):
        return cls(
            id=str(row[0]),
            name=str(row[1]),
            price=to_int(row[2] if len(row) > 2 else 0),
            category=str(row[3]) if len(row) > 3 else '',
        )


# 5. CUP STOCK
class CupItem(db.Model):
    __tablename__ = 'cups'

    id = db.Column(db.String(40), primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    stock = db.Column(db.Integer, default=0)

    def as_row(self):
        return [self.id, self.name, self.stock]

    @classmethod
    def from_row(cls, row):
        return cls(
            id=str(row[0]),
            name=str(row[1]),
            stock=to_int(row[2] if len(row) > 2 else 0),
        )


# 6. KEY/VALUE SETTINGS (PINs, Web App URL)
class Setting(db.Model):
    __tablename__ = 'settings'

    key = db.Column(db.String(40), primary_key=True)
    value = db.Column(db.String(500), default='')

    def __repr__(self):
        return f"<Setting {self.key}>"
