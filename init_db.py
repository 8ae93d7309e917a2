# init_db.py - recreate the local cache with default PINs and a starter catalog
from app import app, db
from models import Product, CupItem, Setting
from storage import DEFAULT_PINS

def seed_local_data():
    with app.app_context():
        # 1. CLEAN SLATE
        print("🗑️ Menghapus database lama...")
        db.drop_all()
        print("🏗️ Membuat tabel baru...")
        db.create_all()

        # 2. DEFAULT PINS (the sheet overrides these once a Web App URL is set)
        print("🔑 Menyimpan PIN default...")
        for key, value in DEFAULT_PINS.items():
            db.session.add(Setting(key=key, value=value))

        # 3. STARTER CATALOG
        print("🧋 Membuat katalog awal...")
        products = [
            # id, name, price, category
            ("1", "Es Teh Original", 5000, "Teh"),
            ("2", "Es Teh Lemon", 8000, "Teh"),
            ("3", "Thai Tea", 15000, "Teh"),
            ("4", "Kopi Susu Gula Aren", 18000, "Kopi"),
            ("5", "Americano", 15000, "Kopi"),
            ("6", "Coklat", 15000, "Non-Kopi"),
        ]
        for row in products:
            db.session.add(Product.from_row(row))

        # 4. CUP STOCK
        print("🥤 Membuat stok cup...")
        for row in [("1", "Cup 16oz", 200), ("2", "Cup 22oz", 150)]:
            db.session.add(CupItem.from_row(row))

        db.session.commit()
        print("✅ Database lokal siap (PIN + Produk + Cup)")

if __name__ == "__main__":
    seed_local_data()
