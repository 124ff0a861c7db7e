from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi import HTTPException

from app.auth import (
    ROLE_PERMISSIONS,
    PermissionChecker,
    check_permission,
    create_access_token,
    decode_token,
    user_from_claims,
)
from conftest import make_user


def test_token_round_trip_builds_identity() -> None:
    token = create_access_token({"sub": "u-1", "role": "operator", "roles": ["quality_inspector"], "username": "olga"})

    user = user_from_claims(decode_token(token))

    assert user.id == "u-1"
    assert user.username == "olga"
    assert user.all_roles == ("operator", "quality_inspector")


def test_expired_token_is_rejected() -> None:
    token = create_access_token({"sub": "u-1", "role": "operator"}, expires_delta=timedelta(seconds=-3600))

    with pytest.raises(HTTPException) as exc:
        decode_token(token)

    assert exc.value.status_code == 401
    assert exc.value.detail == "Token expired"


@pytest.mark.parametrize(
    "claims",
    [
        {"role": "operator"},
        {"sub": "u-1"},
        {"sub": "u-1", "role": "operator", "roles": "admin"},
    ],
)
def test_incomplete_claims_are_rejected(claims) -> None:
    with pytest.raises(HTTPException) as exc:
        user_from_claims(claims)

    assert exc.value.status_code == 401


def test_username_falls_back_to_subject() -> None:
    assert user_from_claims({"sub": "u-7", "role": "viewer"}).username == "u-7"


def test_permission_matrix() -> None:
    assert all(ROLE_PERMISSIONS["admin"].values())
    assert not any(ROLE_PERMISSIONS["viewer"].values())
    assert check_permission(make_user(role="operator"), "canRecordSteps")
    assert not check_permission(make_user(role="operator"), "canRecordQuality")
    assert check_permission(make_user(role="quality_inspector"), "canRecordQuality")
    assert not check_permission(make_user(role="production_manager"), "canModerateComments")
    assert not check_permission(make_user(role="unknown"), "canComment")


def test_any_role_grants_permission() -> None:
    user = make_user(role="operator", roles=("quality_inspector",))

    assert check_permission(user, "canRecordQuality")
    assert check_permission(user, "canRecordSteps")


def test_permission_checker_returns_user_or_403() -> None:
    checker = PermissionChecker("canManageFeedback")
    manager = make_user(role="production_manager")

    assert checker(current_user=manager) is manager
    with pytest.raises(HTTPException) as exc:
        checker(current_user=make_user(role="supervisor"))
    assert exc.value.status_code == 403
