"""
Tests for the `flask create-user` and `flask seed-bins` commands.
"""

from ecobin.models import SmartBin, User


def test_create_user(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        "create-user", "--email", "Ops@EcoBin.test", "--name", "Ops Lead",
        "--role", "operator", "--password", "Passw0rd!",
    ])
    assert result.exit_code == 0, result.output
    user = User.query.filter_by(email="ops@ecobin.test").one()
    assert user.role == "operator"
    assert user.password_hash.startswith("scrypt:")


def test_create_user_rejects_duplicate_and_weak_password(app, operator):
    runner = app.test_cli_runner()
    dup = runner.invoke(args=[
        "create-user", "--email", operator.email, "--name", "Again", "--password", "Passw0rd!",
    ])
    assert dup.exit_code != 0
    assert "already exists" in dup.output

    weak = runner.invoke(args=[
        "create-user", "--email", "new@ecobin.test", "--name", "New", "--password", "short",
    ])
    assert weak.exit_code != 0
    assert User.query.filter_by(email="new@ecobin.test").count() == 0


def test_seed_bins(app, operator):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        "seed-bins", "--type", "organic", "--count", "3", "--created-by", str(operator.id),
    ])
    assert result.exit_code == 0, result.output
    bins = SmartBin.query.all()
    assert len(bins) == 3
    assert {b.status for b in bins} == {"available"}
    assert {b.capacity for b in bins} == {100}
    assert {b.created_by_id for b in bins} == {operator.id}


def test_seed_bins_unknown_actor(app):
    result = app.test_cli_runner().invoke(args=["seed-bins", "--type", "general", "--created-by", "999"])
    assert result.exit_code != 0
    assert SmartBin.query.count() == 0
