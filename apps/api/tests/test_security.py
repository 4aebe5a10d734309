"""
Tests de verificación de JWT.
"""

import uuid

import pytest
from jose import jwt

from core.config import settings
from core.security import ALGORITHM, create_access_token, verify_token


def test_roundtrip_returns_user_id():
    user_id = uuid.uuid4()
    assert verify_token(create_access_token(user_id)) == user_id


def test_expired_token_rejected():
    token = create_access_token(uuid.uuid4(), expires_minutes=-1)
    with pytest.raises(ValueError, match="Token inválido"):
        verify_token(token)


def test_wrong_signature_rejected():
    token = jwt.encode({"sub": str(uuid.uuid4())}, "otra-clave", algorithm=ALGORITHM)
    with pytest.raises(ValueError):
        verify_token(token)


def test_missing_subject_rejected():
    token = jwt.encode({"foo": "bar"}, settings.SECRET_KEY, algorithm=ALGORITHM)
    with pytest.raises(ValueError, match="subject"):
        verify_token(token)


def test_non_uuid_subject_rejected():
    token = jwt.encode({"sub": "admin"}, settings.SECRET_KEY, algorithm=ALGORITHM)
    with pytest.raises(ValueError, match="subject inválido"):
        verify_token(token)
