"""Tests for the ``seed_admin`` management command."""
from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from apps.accounts.models import UserModel


def _run(*args, **kwargs):
    out = StringIO()
    call_command("seed_admin", *args, stdout=out, **kwargs)
    return out.getvalue()


@pytest.mark.django_db
def test_creates_admin():
    out = _run("--email", "Ops@Example.com", "--name", "Ops Team")
    user = UserModel.objects.get(email="ops@example.com")
    assert user.role == "admin"
    assert user.name == "Ops Team"
    assert "Created admin" in out


@pytest.mark.django_db
def test_promotes_existing_user(make_user):
    user = make_user("seller", email="lead@example.com")
    out = _run("--email", "lead@example.com")
    user.refresh_from_db()
    assert user.role == "admin"
    assert "Promoted" in out
    assert UserModel.objects.count() == 1


@pytest.mark.django_db
def test_is_idempotent():
    _run("--email", "ops@example.com")
    out = _run("--email", "ops@example.com")
    assert "already an admin" in out
    assert UserModel.objects.filter(role="admin").count() == 1


@pytest.mark.django_db
def test_falls_back_to_setting(settings):
    settings.SEED_ADMIN_EMAIL = "root@example.com"
    _run()
    assert UserModel.objects.get(email="root@example.com").role == "admin"


@pytest.mark.django_db
@pytest.mark.parametrize("args", [(), ("--email", "not-an-email")])
def test_rejects_missing_or_invalid_email(settings, args):
    settings.SEED_ADMIN_EMAIL = ""
    with pytest.raises(CommandError):
        _run(*args)
    assert not UserModel.objects.exists()
