from __future__ import annotations

import pytest
from jose import JWTError

from src.core.security import (
    ACCESS_TOKEN,
    REFRESH_TOKEN,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)


def test_password_hash_round_trip():
    stored = hash_password("shift-a-2024")
    assert stored != "shift-a-2024"
    assert verify_password("shift-a-2024", stored)
    assert not verify_password("shift-b-2024", stored)


def test_access_token_carries_roles():
    claims = decode_token(create_access_token("user-1", roles=["operator", "reviewer"]), ACCESS_TOKEN)

    assert claims["sub"] == "user-1"
    assert claims["roles"] == ["operator", "reviewer"]
    assert claims["type"] == "access"
    assert claims["exp"] > claims["iat"]


def test_refresh_token_is_not_a_bearer_token():
    refresh = create_refresh_token("user-1")

    assert decode_token(refresh, REFRESH_TOKEN)["sub"] == "user-1"
    assert "roles" not in decode_token(refresh)
    with pytest.raises(JWTError):
        decode_token(refresh, ACCESS_TOKEN)
    with pytest.raises(JWTError):
        decode_token(create_access_token("user-1"), REFRESH_TOKEN)


def test_token_with_swapped_claims_is_rejected():
    header, _, signature = create_access_token("user-1", roles=["operator"]).split(".")
    forged_claims = create_access_token("user-1", roles=["admin"]).split(".")[1]

    with pytest.raises(JWTError):
        decode_token(f"{header}.{forged_claims}.{signature}")
