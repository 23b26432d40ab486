import csv
import io
import os
import shutil
import tempfile
import threading
import unittest
import uuid
from datetime import date, timedelta
from decimal import Decimal

TEST_DB_DIR = tempfile.mkdtemp(prefix="fintrack-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(TEST_DB_DIR, 'test.db')}"

from fastapi.testclient import TestClient  # noqa: E402

from fintrack.main import app, engine, execute_recurring_transactions, metadata  # noqa: E402


class ApiTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        metadata.create_all(engine)
        cls.client = TestClient(app)

    @classmethod
    def tearDownClass(cls) -> None:
        cls.client.close()

    def signup(self) -> dict:
        email = f"user-{uuid.uuid4().hex[:10]}@example.com"
        response = self.client.post(
            "/auth/signup", json={"email": email, "password": "secret123"}
        )
        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        return {"Authorization": f"Bearer {body['token']}"}

    def create_category(self, headers: dict, name: str, type: str = "expense", color: str = "#F87171") -> dict:
        response = self.client.post(
            "/categories", json={"name": name, "type": type, "color": color}, headers=headers
        )
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()

    def create_transaction(self, headers: dict, **fields) -> dict:
        payload = {
            "name": "Coffee",
            "amount": "10",
            "type": "expense",
            "date": date.today().isoformat(),
        }
        payload.update(fields)
        response = self.client.post("/transactions", json=payload, headers=headers)
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()

    def create_card(self, headers: dict, **fields) -> dict:
        payload = {"name": "Main card", "credit_limit": 5000, "due_day": 10}
        payload.update(fields)
        response = self.client.post("/cards", json=payload, headers=headers)
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()


def tearDownModule() -> None:
    engine.dispose()
    shutil.rmtree(TEST_DB_DIR, ignore_errors=True)


class AuthApiTests(ApiTestCase):
    def test_health_needs_no_session(self) -> None:
        response = self.client.get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_signup_seeds_default_categories(self) -> None:
        headers = self.signup()

        response = self.client.get("/categories", headers=headers)

        self.assertEqual(response.status_code, 200)
        types = {category["type"] for category in response.json()}
        self.assertEqual(types, {"income", "expense"})

    def test_signup_validation_and_duplicates(self) -> None:
        email = f"dup-{uuid.uuid4().hex[:10]}@example.com"
        first = self.client.post("/auth/signup", json={"email": email, "password": "secret123"})
        duplicate = self.client.post(
            "/auth/signup", json={"email": email.upper(), "password": "secret123"}
        )
        short = self.client.post(
            "/auth/signup", json={"email": f"x{email}", "password": "123"}
        )
        invalid = self.client.post(
            "/auth/signup", json={"email": "not-an-email", "password": "secret123"}
        )

        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.json()["user"]["email"], email)
        self.assertEqual(first.json()["user"]["theme"], "dark")
        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(short.status_code, 400)
        self.assertEqual(invalid.status_code, 400)

    def test_login_me_and_logout(self) -> None:
        email = f"login-{uuid.uuid4().hex[:10]}@example.com"
        self.client.post("/auth/signup", json={"email": email, "password": "secret123"})

        wrong = self.client.post("/auth/login", json={"email": email, "password": "nope"})
        login = self.client.post("/auth/login", json={"email": email, "password": "secret123"})
        self.assertEqual(wrong.status_code, 401)
        self.assertEqual(login.status_code, 200)
        headers = {"Authorization": f"Bearer {login.json()['token']}"}

        me = self.client.get("/auth/me", headers=headers)
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["email"], email)

        logout = self.client.post("/auth/logout", headers=headers)
        self.assertEqual(logout.status_code, 200)
        self.assertEqual(self.client.get("/auth/me", headers=headers).status_code, 401)

    def test_endpoints_require_bearer_token(self) -> None:
        self.assertEqual(self.client.get("/transactions").status_code, 401)
        self.assertEqual(
            self.client.get(
                "/transactions", headers={"Authorization": "Bearer unknown"}
            ).status_code,
            401,
        )
        self.assertEqual(
            self.client.get("/transactions", headers={"Authorization": "Basic abc"}).status_code,
            401,
        )

    def test_theme_settings(self) -> None:
        headers = self.signup()

        current = self.client.get("/users/me/settings", headers=headers)
        updated = self.client.put("/users/me/settings", json={"theme": "Light"}, headers=headers)
        invalid = self.client.put("/users/me/settings", json={"theme": "blue"}, headers=headers)

        self.assertEqual(current.json()["theme"], "dark")
        self.assertEqual(updated.json()["theme"], "light")
        self.assertEqual(invalid.status_code, 400)


class CategoryApiTests(ApiTestCase):
    def test_create_normalizes_color_and_derives_text_color(self) -> None:
        headers = self.signup()

        category = self.create_category(headers, "Pets", color="4ade80")

        self.assertEqual(category["color"], "#4ADE80")
        self.assertEqual(category["text_color"], "#000000")

    def test_names_are_unique_per_type(self) -> None:
        headers = self.signup()
        self.create_category(headers, "Gifts", type="expense")

        duplicate = self.client.post(
            "/categories",
            json={"name": "Gifts", "type": "expense", "color": "#000000"},
            headers=headers,
        )
        other_type = self.client.post(
            "/categories",
            json={"name": "Gifts", "type": "income", "color": "#000000"},
            headers=headers,
        )

        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(other_type.status_code, 200)

    def test_partial_update_and_invalid_color(self) -> None:
        headers = self.signup()
        category = self.create_category(headers, "Books")

        updated = self.client.put(
            f"/categories/{category['id']}", json={"color": "#1E293B"}, headers=headers
        )
        invalid = self.client.put(
            f"/categories/{category['id']}", json={"color": "blue"}, headers=headers
        )

        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.json()["name"], "Books")
        self.assertEqual(updated.json()["text_color"], "#FFFFFF")
        self.assertEqual(invalid.status_code, 400)

    def test_delete_unlinks_transactions(self) -> None:
        headers = self.signup()
        category = self.create_category(headers, "Games")
        txn = self.create_transaction(headers, category_id=category["id"])

        response = self.client.delete(f"/categories/{category['id']}", headers=headers)
        fetched = self.client.get(f"/transactions/{txn['id']}", headers=headers).json()

        self.assertEqual(response.status_code, 200)
        self.assertIsNone(fetched["category_id"])
        self.assertEqual(fetched["category"], "Games")

    def test_delete_blocked_by_recurring_transaction(self) -> None:
        headers = self.signup()
        category = self.create_category(headers, "Gym")
        self.client.post(
            "/recurring-transactions",
            json={
                "name": "Gym",
                "amount": 90,
                "category_id": category["id"],
                "start_date": (date.today() + timedelta(days=10)).isoformat(),
            },
            headers=headers,
        )

        response = self.client.delete(f"/categories/{category['id']}", headers=headers)

        self.assertEqual(response.status_code, 409)

    def test_other_users_categories_are_hidden(self) -> None:
        owner = self.signup()
        stranger = self.signup()
        category = self.create_category(owner, "Private")

        response = self.client.get(f"/categories/{category['id']}", headers=stranger)

        self.assertEqual(response.status_code, 404)


class TransactionApiTests(ApiTestCase):
    def test_create_parses_brazilian_amounts_and_snapshots_category(self) -> None:
        headers = self.signup()
        category = self.create_category(headers, "Market", color="#FBBF24")

        txn = self.create_transaction(
            headers, name="Groceries", amount="R$ 1.234,56", category_id=category["id"]
        )

        self.assertEqual(Decimal(txn["amount"]), Decimal("1234.56"))
        self.assertEqual(txn["category"], "Market")
        self.assertEqual(txn["category_color"], "#FBBF24")
        self.assertTrue(txn["realized"])

    def test_rejects_non_positive_amount_and_unknown_card(self) -> None:
        headers = self.signup()
        payload = {"name": "Bad", "amount": 0, "type": "expense", "date": date.today().isoformat()}

        zero = self.client.post("/transactions", json=payload, headers=headers)
        payload.update(amount="NaN")
        not_a_number = self.client.post("/transactions", json=payload, headers=headers)
        payload.update(amount=10, card_id=999999)
        unknown_card = self.client.post("/transactions", json=payload, headers=headers)

        self.assertEqual(zero.status_code, 400)
        self.assertEqual(not_a_number.status_code, 400)
        self.assertEqual(unknown_card.status_code, 404)

    def test_linked_category_rename_wins_over_snapshot(self) -> None:
        headers = self.signup()
        category = self.create_category(headers, "Bars")
        txn = self.create_transaction(headers, category_id=category["id"])

        self.client.put(f"/categories/{category['id']}", json={"name": "Pubs"}, headers=headers)
        fetched = self.client.get(f"/transactions/{txn['id']}", headers=headers).json()

        self.assertEqual(fetched["category"], "Pubs")

    def test_filters_and_sorting(self) -> None:
        headers = self.signup()
        self.create_transaction(headers, name="Coffee beans", amount="30")
        self.create_transaction(headers, name="Salary", amount="3000", type="income")
        self.create_transaction(headers, name="Coffee shop", amount="12", method="pix")

        default = self.client.get("/transactions", headers=headers).json()
        expenses = self.client.get(
            "/transactions", params={"type": "expense", "sort_by": "amount_asc"}, headers=headers
        ).json()
        search = self.client.get(
            "/transactions", params={"search": "coffee", "min_amount": "20"}, headers=headers
        ).json()
        by_method = self.client.get(
            "/transactions", params={"method": "pix"}, headers=headers
        ).json()
        bad_sort = self.client.get("/transactions", params={"sort_by": "name"}, headers=headers)

        self.assertEqual(default[0]["name"], "Coffee shop")
        self.assertEqual([txn["name"] for txn in expenses], ["Coffee shop", "Coffee beans"])
        self.assertEqual([txn["name"] for txn in search], ["Coffee beans"])
        self.assertEqual([txn["name"] for txn in by_method], ["Coffee shop"])
        self.assertEqual(bad_sort.status_code, 400)

    def test_search_treats_wildcards_literally(self) -> None:
        headers = self.signup()
        for name in ("a_b", "axb", "100% cotton", "1000 cotton"):
            self.create_transaction(headers, name=name)

        underscore = self.client.get(
            "/transactions", params={"search": "a_b"}, headers=headers
        ).json()
        percent = self.client.get(
            "/transactions", params={"search": "100%"}, headers=headers
        ).json()

        self.assertEqual([txn["name"] for txn in underscore], ["a_b"])
        self.assertEqual([txn["name"] for txn in percent], ["100% cotton"])

    def test_partial_update_and_delete(self) -> None:
        headers = self.signup()
        txn = self.create_transaction(headers, name="Rent", amount="900")

        updated = self.client.put(
            f"/transactions/{txn['id']}", json={"realized": False}, headers=headers
        )
        deleted = self.client.delete(f"/transactions/{txn['id']}", headers=headers)
        missing = self.client.get(f"/transactions/{txn['id']}", headers=headers)

        self.assertEqual(updated.status_code, 200)
        self.assertFalse(updated.json()["realized"])
        self.assertEqual(updated.json()["name"], "Rent")
        self.assertEqual(Decimal(updated.json()["amount"]), Decimal("900"))
        self.assertEqual(deleted.json(), {"status": "deleted"})
        self.assertEqual(missing.status_code, 404)


class CardApiTests(ApiTestCase):
    def test_validation(self) -> None:
        headers = self.signup()
        base = {"name": "Card", "credit_limit": 1000, "due_day": 10}

        bad_day = self.client.post("/cards", json={**base, "due_day": 32}, headers=headers)
        bad_limit = self.client.post("/cards", json={**base, "credit_limit": 0}, headers=headers)

        self.assertEqual(bad_day.status_code, 400)
        self.assertEqual(bad_limit.status_code, 400)

    def test_statement_sums_current_month_expenses(self) -> None:
        headers = self.signup()
        card = self.create_card(headers)
        self.create_transaction(headers, amount="200", card_id=card["id"])
        self.create_transaction(headers, amount="100", card_id=card["id"])
        self.create_transaction(headers, amount="50", type="income", card_id=card["id"])
        last_month = date.today().replace(day=1) - timedelta(days=1)
        self.create_transaction(
            headers, amount="75", card_id=card["id"], date=last_month.isoformat()
        )

        response = self.client.get(f"/cards/{card['id']}/statement", headers=headers)

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["month"], date.today().strftime("%Y-%m"))
        self.assertEqual(Decimal(body["statement"]), Decimal("300"))
        self.assertEqual(Decimal(body["available"]), Decimal("4700"))

    def test_latest_active_card(self) -> None:
        headers = self.signup()
        self.assertEqual(self.client.get("/cards/latest", headers=headers).status_code, 404)
        first = self.create_card(headers, name="First")
        self.create_card(headers, name="Inactive", is_active=False)

        latest = self.client.get("/cards/latest", headers=headers).json()

        self.assertEqual(latest["id"], first["id"])

    def test_delete_blocked_by_goal_and_unlinks_transactions(self) -> None:
        headers = self.signup()
        card = self.create_card(headers)
        txn = self.create_transaction(headers, card_id=card["id"])
        goal = self.client.post(
            "/goals",
            json={
                "name": "Card cap",
                "goal_type": "card",
                "target_value": 500,
                "card_id": card["id"],
            },
            headers=headers,
        ).json()

        blocked = self.client.delete(f"/cards/{card['id']}", headers=headers)
        self.client.delete(f"/goals/{goal['id']}", headers=headers)
        deleted = self.client.delete(f"/cards/{card['id']}", headers=headers)
        fetched = self.client.get(f"/transactions/{txn['id']}", headers=headers).json()

        self.assertEqual(blocked.status_code, 409)
        self.assertEqual(deleted.status_code, 200)
        self.assertIsNone(fetched["card_id"])


class RecurringApiTests(ApiTestCase):
    def test_execute_materializes_due_templates_once(self) -> None:
        headers = self.signup()
        category = self.create_category(headers, "Streaming", color="#A78BFA")
        template = self.client.post(
            "/recurring-transactions",
            json={
                "name": "Streaming",
                "amount": "R$ 39,90",
                "type": "expense",
                "category_id": category["id"],
                "payment_method": "credit",
                "frequency": "mensal",
                "start_date": date.today().isoformat(),
            },
            headers=headers,
        ).json()
        self.client.post(
            "/recurring-transactions",
            json={
                "name": "Later",
                "amount": 10,
                "start_date": (date.today() + timedelta(days=3)).isoformat(),
            },
            headers=headers,
        )

        first = self.client.post("/recurring-transactions/execute", headers=headers)
        second = self.client.post("/recurring-transactions/execute", headers=headers)
        created = self.client.get("/transactions", headers=headers).json()
        refreshed = self.client.get(
            f"/recurring-transactions/{template['id']}", headers=headers
        ).json()

        self.assertEqual(template["frequency"], "monthly")
        self.assertEqual(first.json(), {"executed": 1})
        self.assertEqual(second.json(), {"executed": 0})
        self.assertEqual(len(created), 1)
        self.assertEqual(created[0]["recurring_id"], template["id"])
        self.assertEqual(created[0]["method"], "credit")
        self.assertEqual(created[0]["category"], "Streaming")
        self.assertEqual(created[0]["date"], date.today().isoformat())
        self.assertEqual(Decimal(created[0]["amount"]), Decimal("39.90"))
        self.assertEqual(refreshed["last_execution"], date.today().isoformat())

    def test_concurrent_executions_materialize_once(self) -> None:
        headers = self.signup()
        user_id = self.client.get("/auth/me", headers=headers).json()["id"]
        self.client.post(
            "/recurring-transactions",
            json={"name": "Rent", "amount": 900, "start_date": date.today().isoformat()},
            headers=headers,
        )
        workers = 4
        barrier = threading.Barrier(workers)
        results = []

        def run() -> None:
            barrier.wait()
            results.append(execute_recurring_transactions(user_id, date.today()))

        threads = [threading.Thread(target=run) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        created = self.client.get(
            "/transactions", params={"search": "Rent"}, headers=headers
        ).json()

        self.assertEqual(sum(results), 1)
        self.assertEqual(len(created), 1)

    def test_status_toggle_stops_execution(self) -> None:
        headers = self.signup()
        template = self.client.post(
            "/recurring-transactions",
            json={"name": "Paused", "amount": 5, "start_date": date.today().isoformat()},
            headers=headers,
        ).json()

        paused = self.client.patch(
            f"/recurring-transactions/{template['id']}/status",
            json={"is_active": False},
            headers=headers,
        )
        executed = self.client.post("/recurring-transactions/execute", headers=headers)

        self.assertFalse(paused.json()["is_active"])
        self.assertEqual(executed.json(), {"executed": 0})

    def test_validation(self) -> None:
        headers = self.signup()
        today = date.today()

        bad_frequency = self.client.post(
            "/recurring-transactions",
            json={"name": "x", "amount": 5, "frequency": "daily", "start_date": today.isoformat()},
            headers=headers,
        )
        bad_range = self.client.post(
            "/recurring-transactions",
            json={
                "name": "x",
                "amount": 5,
                "start_date": today.isoformat(),
                "end_date": (today - timedelta(days=1)).isoformat(),
            },
            headers=headers,
        )

        self.assertEqual(bad_frequency.status_code, 400)
        self.assertEqual(bad_range.status_code, 400)

    def test_upcoming_occurrences(self) -> None:
        headers = self.signup()
        today = date.today()
        template = self.client.post(
            "/recurring-transactions",
            json={
                "name": "Cleaning",
                "amount": 80,
                "frequency": "weekly",
                "start_date": today.isoformat(),
            },
            headers=headers,
        ).json()

        response = self.client.get("/recurring-transactions/upcoming", headers=headers)

        self.assertEqual(response.status_code, 200)
        upcoming = response.json()
        self.assertEqual(len(upcoming), 5)
        self.assertEqual(upcoming[0]["date"], today.isoformat())
        self.assertEqual(upcoming[1]["date"], (today + timedelta(days=7)).isoformat())
        self.assertEqual(upcoming[0]["recurring_id"], template["id"])

    def test_delete_keeps_history(self) -> None:
        headers = self.signup()
        template = self.client.post(
            "/recurring-transactions",
            json={"name": "Once", "amount": 5, "start_date": date.today().isoformat()},
            headers=headers,
        ).json()
        self.client.post("/recurring-transactions/execute", headers=headers)

        deleted = self.client.delete(f"/recurring-transactions/{template['id']}", headers=headers)
        history = self.client.get("/transactions", headers=headers).json()

        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(len(history), 1)
        self.assertIsNone(history[0]["recurring_id"])


class GoalApiTests(ApiTestCase):
    def test_progress_and_alerts(self) -> None:
        headers = self.signup()
        goal = self.client.post(
            "/goals",
            json={
                "name": "Monthly spending",
                "goal_type": "general",
                "target_value": 100,
                "alerts_enabled": True,
            },
            headers=headers,
        ).json()
        self.create_transaction(headers, amount="92")

        progress = self.client.get(f"/goals/{goal['id']}/progress", headers=headers).json()
        all_progress = self.client.get("/goals/progress", headers=headers).json()
        alerts = self.client.get("/goals/alerts", headers=headers).json()

        self.assertEqual(goal["alert_levels"], [70, 90, 100])
        self.assertEqual(Decimal(progress["current_value"]), Decimal("92"))
        self.assertEqual(Decimal(progress["percentage"]), Decimal("92"))
        self.assertEqual(progress["status"], "warning")
        self.assertEqual(Decimal(progress["remaining_value"]), Decimal("8"))
        self.assertEqual(len(all_progress), 1)
        self.assertEqual(len(alerts), 1)
        self.assertIn("*Goal:* Monthly spending", alerts[0]["message"])

    def test_validation(self) -> None:
        headers = self.signup()

        missing_card = self.client.post(
            "/goals",
            json={"name": "Card", "goal_type": "card", "target_value": 100},
            headers=headers,
        )
        bad_custom = self.client.post(
            "/goals",
            json={
                "name": "Trip",
                "goal_type": "general",
                "target_value": 100,
                "period": "custom",
                "start_date": "2024-05-10",
                "end_date": "2024-05-01",
            },
            headers=headers,
        )
        bad_levels = self.client.post(
            "/goals",
            json={
                "name": "Levels",
                "goal_type": "general",
                "target_value": 100,
                "alert_levels": [0, 250],
            },
            headers=headers,
        )

        self.assertEqual(missing_card.status_code, 400)
        self.assertEqual(bad_custom.status_code, 400)
        self.assertEqual(bad_levels.status_code, 400)

    def test_partial_update(self) -> None:
        headers = self.signup()
        goal = self.client.post(
            "/goals",
            json={"name": "Cap", "goal_type": "general", "target_value": 100},
            headers=headers,
        ).json()

        updated = self.client.put(
            f"/goals/{goal['id']}", json={"target_value": "R$ 250,00"}, headers=headers
        )

        self.assertEqual(updated.status_code, 200)
        self.assertEqual(Decimal(updated.json()["target_value"]), Decimal("250"))
        self.assertEqual(updated.json()["name"], "Cap")


class DashboardApiTests(ApiTestCase):
    def test_dashboard_aggregates_current_month(self) -> None:
        headers = self.signup()
        card = self.create_card(headers)
        salary = self.create_category(headers, "Paycheck", type="income", color="#4ADE80")
        self.create_transaction(
            headers, name="Salary", amount="3000", type="income", category_id=salary["id"]
        )
        self.create_transaction(headers, name="Dinner", amount="120", card_id=card["id"])
        self.create_transaction(headers, name="Bill", amount="80", realized=False)
        self.client.post(
            "/recurring-transactions",
            json={"name": "Internet", "amount": 100, "start_date": date.today().isoformat()},
            headers=headers,
        )

        response = self.client.get("/dashboard", headers=headers)

        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        summary = body["summary"]
        self.assertEqual(body["period"], "monthly")
        self.assertEqual(Decimal(summary["incomes"]), Decimal("3000"))
        self.assertEqual(Decimal(summary["expenses"]), Decimal("220"))
        self.assertEqual(Decimal(summary["balance"]), Decimal("2780"))
        self.assertEqual(Decimal(summary["payable"]), Decimal("80"))
        self.assertEqual(body["income_pie"]["categories"], ["Paycheck"])
        self.assertEqual(body["income_pie"]["percentages"], [100])
        self.assertEqual(sum(body["expense_pie"]["percentages"]), 100)
        self.assertEqual(len(body["line_chart"]["labels"]), len(body["line_chart"]["incomes"]))
        self.assertEqual(len(body["recent_transactions"]), 4)
        self.assertEqual(Decimal(body["credit_cards"][0]["statement"]), Decimal("120"))

    def test_dashboard_period_aliases_and_validation(self) -> None:
        headers = self.signup()

        yearly = self.client.get("/dashboard", params={"period": "anual"}, headers=headers)
        quarterly = self.client.get(
            "/dashboard", params={"period": "quarterly", "month": 1, "year": 2024}, headers=headers
        )
        invalid = self.client.get("/dashboard", params={"period": "weekly"}, headers=headers)
        zero_month = self.client.get("/dashboard", params={"month": 0}, headers=headers)
        zero_year = self.client.get("/dashboard", params={"year": 0}, headers=headers)

        self.assertEqual(yearly.json()["period"], "yearly")
        self.assertEqual(len(yearly.json()["line_chart"]["labels"]), 12)
        self.assertEqual(quarterly.json()["line_chart"]["labels"], ["Nov", "Dec", "Jan"])
        self.assertEqual(invalid.status_code, 400)
        self.assertEqual(zero_month.status_code, 400)
        self.assertEqual(zero_year.status_code, 400)


class ReportApiTests(ApiTestCase):
    def test_summary_and_report_data(self) -> None:
        headers = self.signup()
        self.create_transaction(headers, name="Salary", amount="1000", type="income")
        self.create_transaction(headers, name="Freelance", amount="200", type="income", realized=False)
        self.create_transaction(headers, name="Rent", amount="300")

        summary = self.client.get("/reports/summary", headers=headers).json()
        expenses = self.client.get(
            "/reports/summary", params={"type": "expense"}, headers=headers
        ).json()
        report = self.client.get("/reports", headers=headers).json()

        self.assertEqual(Decimal(summary["total_income"]), Decimal("1200"))
        self.assertEqual(Decimal(summary["total_expense"]), Decimal("300"))
        self.assertEqual(Decimal(summary["total_balance"]), Decimal("900"))
        self.assertEqual(Decimal(summary["pending_receivables"]), Decimal("200"))
        self.assertEqual(summary["transaction_count"], 3)
        self.assertEqual(expenses["transaction_count"], 1)
        self.assertEqual(len(report["transactions"]), 3)
        self.assertTrue(report["categories"])

    def test_trends(self) -> None:
        headers = self.signup()
        self.create_transaction(headers, name="Salary", amount="1000", type="income")

        trends = self.client.get("/reports/trends", headers=headers).json()
        custom = self.client.get(
            "/reports/trends", params={"period": "custom"}, headers=headers
        ).json()
        invalid = self.client.get("/reports/trends", params={"period": "forever"}, headers=headers)

        self.assertEqual(Decimal(trends["income"]["value"]), Decimal("100"))
        self.assertTrue(trends["income"]["is_positive"])
        self.assertTrue(trends["expense"]["is_positive"])
        self.assertIsNone(custom)
        self.assertEqual(invalid.status_code, 400)

    def test_csv_export(self) -> None:
        headers = self.signup()
        self.create_transaction(headers, name="Rent", amount="R$ 1.500,00", method="pix")

        response = self.client.get("/reports/export.csv", headers=headers)

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.headers["content-type"].startswith("text/csv"))
        rows = list(csv.reader(io.StringIO(response.text)))
        self.assertEqual(rows[0][0], "Date")
        self.assertEqual(rows[1][0], date.today().strftime("%d/%m/%Y"))
        self.assertEqual(rows[1][1], "Rent")
        self.assertEqual(rows[1][4], "pix")
        self.assertEqual(rows[1][5], "1500.00")


if __name__ == "__main__":
    unittest.main()
