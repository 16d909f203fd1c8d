import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from sqlalchemy.exc import SQLAlchemyError

from models.alert import LowStockAlert
from models.log import AuditLog
from models.product import Product
from models.stock import InventoryMovement
from models.supplier import Supplier
from support import ApiTestCase
from utils.tokenJWT import create_access_token


class TestStockAdjustEndpoint(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.make_product("P-1", name="Hex nut M8", quantity=12, min_stock_level=10)

    def _adjust(self, body, headers=None):
        return self.client.post("/stock/adjust", json=body, headers=headers if headers is not None else self.auth())

    def _audit(self):
        return self.fresh(AuditLog, action="STOCK_ADJUSTMENT").order_by(AuditLog.id).all()

    def test_successful_adjustment(self):
        res = self._adjust({"product_stock_code": "p-1", "change_quantity": -3, "notes": "damaged"})
        self.assertEqual(res.status_code, 200)
        body = res.json()
        self.assertTrue(body["success"])
        self.assertTrue(body["stock_changed"])
        self.assertEqual(body["new_quantity"], 9)
        self.assertEqual(body["movement_type"], "adjustment_negative")
        self.assertEqual(body["alert_action"], "created")

        logs = self._audit()
        self.assertEqual(len(logs), 1)
        self.assertEqual(logs[0].status, "SUCCESS")
        self.assertEqual(logs[0].user_id, self.user.id)
        self.assertEqual(logs[0].meta["new_quantity"], 9)

    def test_zero_change_is_rejected_with_field_error(self):
        res = self._adjust({"product_stock_code": "P-1", "change_quantity": 0})
        self.assertEqual(res.status_code, 422)
        body = res.json()
        self.assertFalse(body["success"])
        self.assertFalse(body["stock_changed"])
        self.assertIn("change_quantity", body["field_errors"])
        self.assertEqual(self._audit()[0].status, "FAIL")

    def test_fractional_change_is_rejected_by_validation(self):
        res = self._adjust({"product_stock_code": "P-1", "change_quantity": 1.5})
        self.assertEqual(res.status_code, 422)
        body = res.json()
        self.assertEqual(body["message"], "Invalid form data.")
        self.assertIn("change_quantity", body["field_errors"])
        self.assertEqual(self.fresh(InventoryMovement).count(), 0)

    def test_missing_stock_code_is_rejected(self):
        res = self._adjust({"change_quantity": 1})
        self.assertEqual(res.status_code, 422)
        self.assertIn("product_stock_code", res.json()["field_errors"])

    def test_going_negative_is_rejected(self):
        res = self._adjust({"product_stock_code": "P-1", "change_quantity": -13})
        self.assertEqual(res.status_code, 400)
        body = res.json()
        self.assertFalse(body["stock_changed"])
        self.assertIn("12", body["field_errors"]["change_quantity"][0])
        self.assertEqual(self.fresh(Product, stock_code="P-1").one().quantity_on_hand, 12)
        self.assertEqual(self.fresh(LowStockAlert).count(), 0)
        log = self._audit()[0]
        self.assertEqual(log.status, "FAIL")
        self.assertEqual(log.meta["reason"], "Stock cannot go negative.")

    def test_unknown_product_is_404(self):
        res = self._adjust({"product_stock_code": "NOPE", "change_quantity": 1})
        self.assertEqual(res.status_code, 404)
        self.assertIn("product_stock_code", res.json()["field_errors"])

    def test_requires_authentication(self):
        res = self._adjust({"product_stock_code": "P-1", "change_quantity": 1}, headers={})
        self.assertIn(res.status_code, (401, 403))

        res = self._adjust(
            {"product_stock_code": "P-1", "change_quantity": 1},
            headers={"Authorization": "Bearer not-a-token"},
        )
        self.assertEqual(res.status_code, 401)
        self.assertEqual(self.fresh(Product, stock_code="P-1").one().quantity_on_hand, 12)

    def test_token_for_unknown_user_is_401(self):
        token = create_access_token({"sub": "ghost@example.com"})
        res = self._adjust(
            {"product_stock_code": "P-1", "change_quantity": 1},
            headers={"Authorization": f"Bearer {token}"},
        )
        self.assertEqual(res.status_code, 401)

    def test_expired_token_is_401(self):
        token = create_access_token({"sub": self.user.email}, expires_delta=timedelta(minutes=-5))
        res = self._adjust(
            {"product_stock_code": "P-1", "change_quantity": 1},
            headers={"Authorization": f"Bearer {token}"},
        )
        self.assertEqual(res.status_code, 401)

    def test_inactive_user_is_forbidden(self):
        inactive = self.make_user("gone@example.com", status="inactive")
        res = self._adjust({"product_stock_code": "P-1", "change_quantity": 1}, headers=self.auth(inactive))
        self.assertEqual(res.status_code, 403)

    def test_any_active_role_may_adjust(self):
        tech = self.make_user("floor@example.com", role="tech")
        res = self._adjust({"product_stock_code": "P-1", "change_quantity": 2}, headers=self.auth(tech))
        self.assertEqual(res.status_code, 200)
        movement = self.fresh(InventoryMovement).one()
        self.assertEqual(movement.user_email, "floor@example.com")

    def test_partial_failure_is_reported(self):
        with patch("utils.stock_ledger._append_movement", side_effect=SQLAlchemyError("disk full")):
            res = self._adjust({"product_stock_code": "P-1", "change_quantity": 5})

        self.assertEqual(res.status_code, 200)
        body = res.json()
        self.assertFalse(body["success"])
        self.assertTrue(body["stock_changed"])
        self.assertIsNone(body["movement_id"])
        self.assertIn("movement record could not be saved", body["message"])
        self.assertEqual(self.fresh(Product, stock_code="P-1").one().quantity_on_hand, 17)
        self.assertEqual(self._audit()[0].status, "PARTIAL")

    def test_with_supplier(self):
        supplier = Supplier(name="Acme Metals", supplier_code="ACME")
        self.db.add(supplier)
        self.db.commit()

        res = self._adjust({"product_stock_code": "P-1", "change_quantity": 4, "supplier_id": supplier.id})
        self.assertEqual(res.status_code, 200)

        res = self.client.get("/products/P-1/movements", headers=self.auth())
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()[0]["supplier_code"], "ACME")

        res = self._adjust({"product_stock_code": "P-1", "change_quantity": 4, "supplier_id": 9999})
        self.assertEqual(res.status_code, 404)
        self.assertIn("supplier_id", res.json()["field_errors"])


class TestMovementsAndDeliveries(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.make_product("P-1", name="Hex nut M8", quantity=0)
        self.make_product("P-2", name="Washer", quantity=0)

    def test_list_movements_with_filters(self):
        for code, delta in (("P-1", 5), ("P-2", 3), ("P-1", -2)):
            self.client.post("/stock/adjust", json={"product_stock_code": code, "change_quantity": delta}, headers=self.auth())

        res = self.client.get("/stock/", headers=self.auth())
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["total"], 3)

        res = self.client.get("/stock/", params={"q": "hex"}, headers=self.auth())
        items = res.json()["items"]
        self.assertEqual([i["quantity_changed"] for i in items], [-2, 5])
        self.assertEqual(items[0]["product_name"], "Hex nut M8")

        res = self.client.get("/stock/", params={"type": "adjustment_positive"}, headers=self.auth())
        self.assertEqual(res.json()["total"], 2)

        res = self.client.get("/stock/", params={"q": "%"}, headers=self.auth())
        self.assertEqual(res.json()["total"], 0)
        res = self.client.get("/stock/", params={"q": "_"}, headers=self.auth())
        self.assertEqual(res.json()["total"], 0)

    def test_delivery_reports_skipped_lines(self):
        res = self.client.post(
            "/stock/delivery",
            json={"items": [
                {"product_stock_code": "P-1", "quantity": 10},
                {"product_stock_code": "MISSING", "quantity": 1},
            ]},
            headers=self.auth(),
        )
        self.assertEqual(res.status_code, 200)
        body = res.json()
        self.assertTrue(body["success"])
        self.assertTrue(body["stock_changed"])
        self.assertEqual(len(body["received"]), 1)
        self.assertEqual(body["received"][0]["movement_type"], "purchase_received")
        self.assertEqual(body["skipped"], ["MISSING"])
        self.assertEqual(self.fresh(Product, stock_code="P-1").one().quantity_on_hand, 10)

    def test_delivery_rejects_non_positive_quantity(self):
        res = self.client.post(
            "/stock/delivery",
            json={"items": [{"product_stock_code": "P-1", "quantity": 0}]},
            headers=self.auth(),
        )
        self.assertEqual(res.status_code, 422)

    def _delivery_audit(self):
        return self.fresh(AuditLog, action="STOCK_DELIVERY").order_by(AuditLog.id).all()

    def test_delivery_with_blank_line_writes_nothing(self):
        res = self.client.post(
            "/stock/delivery",
            json={"items": [
                {"product_stock_code": "P-1", "quantity": 5},
                {"product_stock_code": "   ", "quantity": 2},
            ]},
            headers=self.auth(),
        )
        self.assertEqual(res.status_code, 422)
        body = res.json()
        self.assertFalse(body["stock_changed"])
        self.assertIn("items.1.product_stock_code", body["field_errors"])
        self.assertEqual(self.fresh(Product, stock_code="P-1").one().quantity_on_hand, 0)
        self.assertEqual(self.fresh(InventoryMovement).count(), 0)
        self.assertEqual([log.status for log in self._delivery_audit()], ["FAIL"])

    def test_delivery_failing_partway_reports_stock_changed(self):
        from utils import stock_ledger
        from utils.errors import StoreFailure

        real_write = stock_ledger._write_quantity

        def write(db, product, change):
            if product.stock_code == "P-2":
                raise StoreFailure("Could not update the product stock.")
            return real_write(db, product, change)

        with patch("utils.stock_ledger._write_quantity", side_effect=write):
            res = self.client.post(
                "/stock/delivery",
                json={"items": [
                    {"product_stock_code": "P-1", "quantity": 5},
                    {"product_stock_code": "P-2", "quantity": 2},
                ]},
                headers=self.auth(),
            )

        self.assertEqual(res.status_code, 200)
        body = res.json()
        self.assertFalse(body["success"])
        self.assertTrue(body["stock_changed"])
        self.assertEqual([r["stock_code"] for r in body["received"]], ["P-1"])
        self.assertEqual(body["failed"][0]["stock_code"], "P-2")
        self.assertEqual(self.fresh(Product, stock_code="P-1").one().quantity_on_hand, 5)
        log = self._delivery_audit()[0]
        self.assertEqual(log.status, "PARTIAL")
        self.assertEqual(log.meta["failed"], ["P-2"])

    def test_discrepancies_are_admin_only(self):
        with patch("utils.stock_ledger._append_movement", side_effect=SQLAlchemyError("disk full")):
            self.client.post("/stock/adjust", json={"product_stock_code": "P-2", "change_quantity": 4}, headers=self.auth())

        res = self.client.get("/stock/discrepancies", headers=self.auth())
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), [{
            "stock_code": "P-2", "name": "Washer", "quantity_on_hand": 4, "last_recorded_quantity": None,
        }])

        clerk = self.make_user("acc@example.com", role="acc")
        res = self.client.get("/stock/discrepancies", headers=self.auth(clerk))
        self.assertEqual(res.status_code, 403)


class TestSearchAndAlertsEndpoints(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.make_product("BOLT-10", name="Bolt M10", quantity=4)
        self.make_product("NUT-10", name="Nut for bolt", quantity=2)

    def test_short_term_returns_empty_results(self):
        res = self.client.get("/products/search", params={"term": "b"}, headers=self.auth())
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {"success": True, "results": []})

    def test_search_returns_compact_rows(self):
        res = self.client.get("/products/search", params={"term": "bolt"}, headers=self.auth())
        results = res.json()["results"]
        self.assertEqual([r["stock_code"] for r in results], ["BOLT-10", "NUT-10"])
        self.assertEqual(results[0], {"stock_code": "BOLT-10", "name": "Bolt M10", "current_stock": 4})

    def test_alerts_listing(self):
        product = self.fresh(Product, stock_code="NUT-10").one()
        product.min_stock_level = 5
        self.db.commit()
        self.client.post("/stock/adjust", json={"product_stock_code": "NUT-10", "change_quantity": -1}, headers=self.auth())

        res = self.client.get("/alerts", headers=self.auth())
        self.assertEqual(res.status_code, 200)
        alerts = res.json()["alerts"]
        self.assertEqual(len(alerts), 1)
        self.assertEqual(alerts[0]["product_name"], "Nut for bolt")
        self.assertEqual(alerts[0]["current_stock_at_alert"], 1)

        res = self.client.get("/alerts", params={"status": "resolved"}, headers=self.auth())
        self.assertEqual(res.json()["alerts"], [])

        res = self.client.get("/alerts", params={"status": "bogus"}, headers=self.auth())
        self.assertEqual(res.status_code, 422)


class TestProductEndpoints(ApiTestCase):
    def test_create_with_opening_stock_records_movement(self):
        res = self.client.post(
            "/products",
            json={"stock_code": " gear-1 ", "name": "Gear", "sale_price": 12.5, "quantity_on_hand": 20},
            headers=self.auth(),
        )
        self.assertEqual(res.status_code, 201)
        body = res.json()
        self.assertEqual(body["stock_code"], "GEAR-1")
        self.assertEqual(body["quantity_on_hand"], 20)
        self.assertEqual(body["min_stock_level"], 5)

        movements = self.client.get("/products/GEAR-1/movements", headers=self.auth()).json()
        self.assertEqual(len(movements), 1)
        self.assertEqual(movements[0]["movement_type"], "initial_stock")
        self.assertEqual(movements[0]["quantity_after_movement"], 20)

    def test_create_without_stock_opens_alert(self):
        res = self.client.post("/products", json={"stock_code": "EMPTY", "name": "Empty"}, headers=self.auth())
        self.assertEqual(res.status_code, 201)
        self.assertEqual(self.fresh(LowStockAlert, product_stock_code="EMPTY", status="active").count(), 1)
        self.assertEqual(self.fresh(InventoryMovement).count(), 0)

    def test_create_with_alerting_disabled(self):
        res = self.client.post(
            "/products", json={"stock_code": "NOALERT", "name": "Quiet", "min_stock_level": 0}, headers=self.auth()
        )
        self.assertEqual(res.status_code, 201)
        self.assertEqual(self.fresh(LowStockAlert).count(), 0)

    def test_duplicate_stock_code_is_409(self):
        self.make_product("DUP")
        res = self.client.post("/products", json={"stock_code": "dup", "name": "Again"}, headers=self.auth())
        self.assertEqual(res.status_code, 409)

    def test_tech_cannot_edit_catalogue(self):
        tech = self.make_user("floor@example.com", role="tech")
        res = self.client.post("/products", json={"stock_code": "X", "name": "X"}, headers=self.auth(tech))
        self.assertEqual(res.status_code, 403)

    def test_patch_cannot_change_quantity(self):
        self.make_product("P-1", quantity=3)
        res = self.client.patch("/products/P-1", json={"quantity_on_hand": 99, "name": "Renamed"}, headers=self.auth())
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["quantity_on_hand"], 3)
        self.assertEqual(res.json()["name"], "Renamed")

    def test_patch_min_level_reconciles_alert(self):
        self.make_product("P-1", quantity=3, min_stock_level=0)

        self.client.patch("/products/P-1", json={"min_stock_level": 5}, headers=self.auth())
        self.assertEqual(self.fresh(LowStockAlert, status="active").count(), 1)

        self.client.patch("/products/P-1", json={"min_stock_level": 0}, headers=self.auth())
        self.assertEqual(self.fresh(LowStockAlert, status="active").count(), 0)
        self.assertEqual(self.fresh(LowStockAlert, status="resolved").count(), 1)

    def test_alert_failure_on_edit_keeps_the_edit(self):
        self.make_product("P-1", quantity=3, min_stock_level=0)

        with patch("routes.products.reconcile_low_stock_alert", side_effect=SQLAlchemyError("index violated")):
            res = self.client.patch("/products/P-1", json={"min_stock_level": 5}, headers=self.auth())

        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["min_stock_level"], 5)
        self.assertEqual(self.fresh(Product, stock_code="P-1").one().min_stock_level, 5)
        self.assertEqual(self.fresh(LowStockAlert).count(), 0)
        log = self.fresh(AuditLog, action="PRODUCT_UPDATE").one()
        self.assertEqual(log.status, "PARTIAL")
        self.assertIn("index violated", log.meta["warnings"][0])

    def test_alert_failure_on_create_keeps_the_product(self):
        with patch("routes.products.reconcile_low_stock_alert", side_effect=SQLAlchemyError("index violated")):
            res = self.client.post("/products", json={"stock_code": "NEW", "name": "New"}, headers=self.auth())

        self.assertEqual(res.status_code, 201)
        self.assertEqual(self.fresh(Product, stock_code="NEW").count(), 1)
        self.assertEqual(self.fresh(AuditLog, action="PRODUCT_CREATE").one().status, "PARTIAL")

    def test_soft_delete_and_restore(self):
        self.make_product("P-1", quantity=3)

        res = self.client.delete("/products/P-1", headers=self.auth())
        self.assertEqual(res.status_code, 200)
        self.assertIsNotNone(self.fresh(Product, stock_code="P-1").one().deleted_at)

        self.assertEqual(self.client.get("/products/P-1", headers=self.auth()).status_code, 404)
        res = self.client.post("/stock/adjust", json={"product_stock_code": "P-1", "change_quantity": 1}, headers=self.auth())
        self.assertEqual(res.status_code, 404)
        listed = self.client.get("/products", headers=self.auth()).json()
        self.assertEqual(listed["total"], 0)
        listed = self.client.get("/products", params={"include_deleted": True}, headers=self.auth()).json()
        self.assertEqual(listed["total"], 1)

        res = self.client.post("/products/P-1/restore", headers=self.auth())
        self.assertEqual(res.status_code, 200)
        self.assertIsNone(res.json()["deleted_at"])
        res = self.client.post("/stock/adjust", json={"product_stock_code": "P-1", "change_quantity": 1}, headers=self.auth())
        self.assertEqual(res.json()["new_quantity"], 4)

    def test_label_pdf(self):
        self.make_product("LBL-1", name="Label me", sale_price=9.99, currency="EUR")
        res = self.client.get("/products/LBL-1/label", params={"copies": 2}, headers=self.auth())
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.headers["content-type"], "application/pdf")
        self.assertTrue(res.content.startswith(b"%PDF"))


class TestStatsEndpoints(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.make_product("A", name="Alpha", quantity=0, min_stock_level=0)
        self.make_product("B", name="Beta", quantity=0, min_stock_level=10)
        self.make_product("C", name="Gamma", quantity=50, min_stock_level=10)
        self.client.post("/stock/adjust", json={"product_stock_code": "A", "change_quantity": 5}, headers=self.auth())
        self.client.post("/stock/adjust", json={"product_stock_code": "B", "change_quantity": 3}, headers=self.auth())
        self.client.post("/stock/adjust", json={"product_stock_code": "C", "change_quantity": -4}, headers=self.auth())

    def test_summary(self):
        res = self.client.get("/stats/summary", headers=self.auth())
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {
            "total_products": 3,
            "total_units_on_hand": 54,
            "low_stock_products": 1,
            "active_alerts": 1,
            "movements_this_month": 3,
        })

    def test_low_stock_list(self):
        res = self.client.get("/stats/low-stock", headers=self.auth())
        self.assertEqual(res.json(), [
            {"stock_code": "B", "name": "Beta", "quantity_on_hand": 3, "min_stock_level": 10},
        ])

    def test_daily_movements_cover_a_week(self):
        res = self.client.get("/stats/daily-movements", headers=self.auth())
        data = res.json()["data"]
        self.assertEqual(len(data), 7)
        today = datetime.now(timezone.utc).strftime("%d/%m")
        self.assertEqual(data[-1], {"date": today, "units_in": 8, "units_out": 4})
        self.assertTrue(all(d["units_in"] == 0 and d["units_out"] == 0 for d in data[:-1]))


class TestLogsAndProfile(ApiTestCase):
    def test_logs_are_admin_only(self):
        self.make_product("P-1")
        self.client.post("/stock/adjust", json={"product_stock_code": "P-1", "change_quantity": 1}, headers=self.auth())

        res = self.client.get("/logs", params={"status": "success"}, headers=self.auth())
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["total"], 1)
        item = res.json()["items"][0]
        self.assertEqual(item["action"], "STOCK_ADJUSTMENT")
        self.assertEqual(item["stock_code"], "P-1")
        self.assertEqual(item["user_email"], "admin@example.com")

        res = self.client.get("/logs", params={"stock_code": "p-1"}, headers=self.auth())
        self.assertEqual(res.json()["total"], 1)
        res = self.client.get("/logs", params={"stock_code": "OTHER"}, headers=self.auth())
        self.assertEqual(res.json()["total"], 0)

        tech = self.make_user("floor@example.com")
        self.assertEqual(self.client.get("/logs", headers=self.auth(tech)).status_code, 403)

    def test_me(self):
        res = self.client.get("/me", headers=self.auth())
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["email"], "admin@example.com")
        self.assertEqual(res.json()["role"], "admin")

    def test_guard_rejects_unknown_role(self):
        from utils.tokenJWT import role_required

        with self.assertRaises(ValueError):
            role_required("admin", "manager")


class TestSupplierEndpoints(ApiTestCase):
    def test_create_and_search(self):
        res = self.client.post(
            "/suppliers",
            json={"name": "Acme Metals", "supplier_code": "acme", "contact_name": "Dana", "email": "sales@acme.example.com"},
            headers=self.auth(),
        )
        self.assertEqual(res.status_code, 201)
        self.assertEqual(res.json()["supplier_code"], "ACME")

        res = self.client.post("/suppliers", json={"name": "Other", "supplier_code": "ACME"}, headers=self.auth())
        self.assertEqual(res.status_code, 409)

        res = self.client.get("/suppliers/search", params={"term": "dan"}, headers=self.auth())
        self.assertEqual([s["name"] for s in res.json()["results"]], ["Acme Metals"])

        res = self.client.get("/suppliers/search", params={"term": "a"}, headers=self.auth())
        self.assertEqual(res.json()["results"], [])

    def test_tech_cannot_create_supplier(self):
        tech = self.make_user("floor@example.com")
        res = self.client.post("/suppliers", json={"name": "Nope"}, headers=self.auth(tech))
        self.assertEqual(res.status_code, 403)


if __name__ == "__main__":
    unittest.main()
