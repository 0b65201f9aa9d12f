import unittest
from flask import Flask

from storefront.extensions import db
from storefront.models import ActivityLog, Setting, User
from storefront.services import settings_service
from storefront.validation import ValidationError


class SettingsServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = Flask(__name__)
        cls.app.config.update(
            SECRET_KEY="test",
            SQLALCHEMY_DATABASE_URI="sqlite:///:memory:",
            SQLALCHEMY_TRACK_MODIFICATIONS=False,
            TESTING=True,
        )
        db.init_app(cls.app)
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        from storefront import models  # noqa: F401
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        db.session.query(ActivityLog).delete()
        db.session.query(Setting).delete()
        db.session.query(User).delete()
        db.session.commit()

        self.admin = User(
            name="Admin",
            email="admin@test.local",
            password_hash="x",
            role="admin",
            is_active=True,
        )
        db.session.add(self.admin)
        db.session.commit()

    def test_missing_key_returns_default(self):
        self.assertIsNone(settings_service.get_setting("store_name"))
        self.assertEqual(settings_service.get_setting("low_stock_threshold", 10), 10)

    def test_set_and_overwrite(self):
        settings_service.set_setting("store_name", "  Boutique Dakar ", user_id=self.admin.id)
        settings_service.set_setting("store_name", "Boutique Thies", user_id=self.admin.id)

        self.assertEqual(settings_service.get_setting("store_name"), "Boutique Thies")
        self.assertEqual(db.session.query(Setting).count(), 1)
        self.assertEqual(db.session.get(Setting, "store_name").updated_by_user_id, self.admin.id)

    def test_known_keys_are_validated(self):
        with self.assertRaises(ValidationError):
            settings_service.set_setting("low_stock_threshold", -3, user_id=self.admin.id)
        with self.assertRaises(ValidationError):
            settings_service.set_setting("low_stock_threshold", "many", user_id=self.admin.id)
        with self.assertRaises(ValidationError):
            settings_service.set_setting("receipt_footer", "   ", user_id=self.admin.id)

        setting = settings_service.set_setting("low_stock_threshold", "7", user_id=self.admin.id)
        self.assertEqual(setting.value, 7)

    def test_free_form_values_keep_their_json_shape(self):
        settings_service.set_setting("ui.banner", {"text": "Sale", "colors": ["red"]}, user_id=self.admin.id)
        self.assertEqual(settings_service.all_settings(), {"ui.banner": {"text": "Sale", "colors": ["red"]}})

    def test_key_format(self):
        for key in ("", None, "Store Name", "9lives", "a" * 65):
            with self.assertRaises(ValidationError):
                settings_service.set_setting(key, "x", user_id=self.admin.id)

    def test_activity_row_created_on_update(self):
        settings_service.set_setting("low_stock_threshold", 5, user_id=self.admin.id)
        settings_service.set_setting("low_stock_threshold", 8, user_id=self.admin.id)

        entry = (
            db.session.query(ActivityLog)
            .filter_by(action="update_setting", entity_id="low_stock_threshold")
            .order_by(ActivityLog.id.desc())
            .first()
        )
        self.assertIsNotNone(entry)
        self.assertEqual(entry.user_id, self.admin.id)
        self.assertEqual(entry.changes, {"before": {"value": 5}, "after": {"value": 8}})


if __name__ == "__main__":
    unittest.main()
