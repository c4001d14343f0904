from datetime import timedelta

import pytest
from jose import JWTError

from app.core.security import context_from_claims, create_access_token, decode_access_token
from app.services.authorization import Role


def test_token_round_trip():
    token = create_access_token({"sub": "u-s1", "role": "student", "student_id": "student-1"})

    context = context_from_claims(decode_access_token(token))
    assert context.role == Role.STUDENT
    assert context.student_id == "student-1"
    assert context.user_id == "u-s1"


def test_expired_token_is_rejected():
    token = create_access_token({"sub": "u-s1", "role": "student"}, expires_delta=timedelta(minutes=-1))

    with pytest.raises(JWTError):
        decode_access_token(token)


@pytest.mark.parametrize("claims, error", [
    ({"sub": "u-s1", "role": "student"}, ValueError),
    ({"sub": "u-l1", "role": "advisor"}, ValueError),
    ({"sub": "u-x", "role": "janitor"}, ValueError),
    ({"role": "admin"}, KeyError),
])
def test_incomplete_claims(claims, error):
    with pytest.raises(error):
        context_from_claims(claims)
