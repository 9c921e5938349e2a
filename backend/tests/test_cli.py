from shopledger.models import User

from conftest import make_bill


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "init", "--email", "boss@shop.test", "--password", "Boss12345"])
    assert result.exit_code == 0, result.output
    assert "PASS Created super admin: boss@shop.test" in result.output

    result = runner.invoke(args=["system", "init", "--email", "boss@shop.test", "--password", "Boss12345"])
    assert result.exit_code == 0
    assert "already exists" in result.output
    assert db_session.query(User).count() == 1


def test_ledger_check_and_fix(app, db_session, customer, bulb):
    runner = app.test_cli_runner()
    make_bill(customer, bulb, quantity=2)

    result = runner.invoke(args=["ledger", "check"])
    assert result.exit_code == 0
    assert "PASS Ledger consistent" in result.output

    customer.total_due_cents = 5
    db_session.commit()

    result = runner.invoke(args=["ledger", "check"])
    assert result.exit_code == 1
    assert f"(ID: {customer.id})" in result.output

    result = runner.invoke(args=["ledger", "check", "--fix"])
    assert result.exit_code == 0
    assert "FIXED 1" in result.output
    assert customer.total_due_cents == 200_00
