# Overview: Threaded checkout tests against a file-backed SQLite database.

import os
import tempfile
import threading
import unittest

from storefront import create_app
from storefront.extensions import db
from storefront.models import Product, ProductImage, Sale, StockMovement
from storefront.services import sales_service
from storefront.services.sales_service import SaleError


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"check_same_thread": False, "timeout": 30}},
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _product(self, stock: int) -> int:
        with self.app.app_context():
            product = Product(name="Concurrent Product", price=1000, purchase_price=400, stock=stock, features=[])
            product.images = [ProductImage(url="https://img.test/c.jpg", public_id="c", is_primary=True)]
            db.session.add(product)
            db.session.commit()
            return product.id

    def _run_checkouts(self, product_id: int, count: int, quantity: int = 1) -> list:
        results = []
        lock = threading.Lock()
        barrier = threading.Barrier(count)

        def worker():
            with self.app.app_context():
                try:
                    barrier.wait()
                    sale = sales_service.create_sale(
                        items=[{"product_id": product_id, "quantity": quantity}],
                        cash_received=quantity * 1000,
                    )
                    with lock:
                        results.append(sale.sale_number)
                except Exception as exc:
                    with lock:
                        results.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def test_last_unit_sold_once(self):
        product_id = self._product(stock=1)
        results = self._run_checkouts(product_id, 2)

        sold = [r for r in results if isinstance(r, str)]
        failed = [r for r in results if not isinstance(r, str)]
        self.assertEqual(len(sold), 1)
        self.assertEqual(len(failed), 1)
        self.assertIsInstance(failed[0], SaleError)

        with self.app.app_context():
            self.assertEqual(db.session.get(Product, product_id).stock, 0)
            self.assertEqual(db.session.query(Sale).count(), 1)
            self.assertEqual(db.session.query(StockMovement).count(), 1)

    def test_sale_numbers_unique_under_contention(self):
        product_id = self._product(stock=20)
        results = self._run_checkouts(product_id, 8)

        errors = [r for r in results if not isinstance(r, str)]
        self.assertFalse(errors)
        self.assertEqual(len(results), len(set(results)))

        with self.app.app_context():
            self.assertEqual(db.session.get(Product, product_id).stock, 12)
            numbers = sorted(number for (number,) in db.session.query(Sale.sale_number).all())
            self.assertEqual([n.rsplit("-", 1)[1] for n in numbers], [f"{i:04d}" for i in range(1, 9)])

    def test_oversell_across_threads(self):
        product_id = self._product(stock=10)
        results = self._run_checkouts(product_id, 2, quantity=6)

        self.assertEqual(sum(1 for r in results if isinstance(r, str)), 1)
        with self.app.app_context():
            self.assertEqual(db.session.get(Product, product_id).stock, 4)


if __name__ == "__main__":
    unittest.main()
