"""
CLI command tests (system init, users, seed demo).
"""

from nursery.models import Customer, InventoryMovement, Product, Supplier, User


class TestSystemCommands:

    def test_init_creates_default_users(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["system", "init"])
        assert result.exit_code == 0, result.output
        assert {u.role for u in db_session.query(User).all()} == {"admin", "manager", "cashier", "inventory"}

        # Idempotent
        result = runner.invoke(args=["system", "init"])
        assert "already exists" in result.output
        assert db_session.query(User).count() == 4

    def test_users_create_rejects_weak_password(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create",
            "--name", "Weak", "--email", "weak@nursery.local",
            "--password", "weak", "--role", "cashier",
        ])
        assert "FAIL Password validation failed" in result.output
        assert db_session.query(User).count() == 0


class TestSeedDemo:

    def test_requires_admin(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["seed", "demo"])
        assert "No admin user found" in result.output

    def test_seed(self, app, db_session, admin_user):
        result = app.test_cli_runner().invoke(args=["seed", "demo"])
        assert result.exit_code == 0, result.output
        assert db_session.query(Supplier).count() == 2
        assert db_session.query(Customer).count() == 1

        products = db_session.query(Product).all()
        assert len(products) == 6
        for product in products:
            assert product.current_stock > 0
            opening = db_session.query(InventoryMovement).filter_by(product_id=product.id).one()
            assert opening.reference == "OPENING"
