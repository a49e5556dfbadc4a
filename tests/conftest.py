import itertools

import pytest
from django.contrib.auth.models import User
from rest_framework.test import APIClient

from companyops.domain.models import Personnel, Role
from companyops.services import push

_seq = itertools.count(1)


@pytest.fixture(autouse=True)
def _clean_push_outbox():
    push.outbox.clear()
    push.invalid_tokens.clear()
    push.failing_tokens.clear()
    yield
    push.outbox.clear()
    push.invalid_tokens.clear()
    push.failing_tokens.clear()


@pytest.fixture
def make_person(db):
    """Factory for Personnel rows; ``with_user`` links a login account."""
    def _make(role=Role.USER, first=None, last=None, rank="CDT", tokens=None, with_user=False, email=None):
        n = next(_seq)
        first = first or f"First{n}"
        last = last or f"Last{n}"
        user = None
        if with_user:
            user = User.objects.create_user(f"user{n}", f"user{n}@example.com", "pw")
        return Personnel.objects.create(
            user=user,
            first_name=first,
            last_name=last,
            rank=rank,
            role=role,
            email=email or f"{first.lower()}.{last.lower()}@example.com",
            fcm_tokens=list(tokens or []),
        )
    return _make


@pytest.fixture
def cadet(make_person):
    return make_person(Role.USER, "Casey", "Cadet", with_user=True)


@pytest.fixture
def other_cadet(make_person):
    return make_person(Role.USER, "Jordan", "Reyes", with_user=True)


@pytest.fixture
def leader(make_person):
    return make_person(Role.CANDIDATE_LEADERSHIP, "Lee", "Leader", with_user=True)


@pytest.fixture
def admin_person(make_person):
    return make_person(Role.ADMIN, "Ada", "Admin", with_user=True)


@pytest.fixture
def uniform_admin(make_person):
    return make_person(Role.UNIFORM_ADMIN, "Uma", "Uniform", with_user=True)


@pytest.fixture
def api_for():
    """APIClient authenticated as the account linked to a Personnel row."""
    def _client(person):
        client = APIClient()
        client.force_authenticate(user=person.user)
        return client
    return _client
