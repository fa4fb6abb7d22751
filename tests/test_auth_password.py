from storefront import auth, crud, errors, models, schemas

import pytest


def test_password_login_flow(client, make_user):
    user = make_user(password="s3cret")

    # login with wrong password
    r = client.post("/auth/login", json={"email": user.email, "password": "wrong"})
    assert r.status_code == 401

    # unknown email
    r = client.post("/auth/login", json={"email": "nobody@example.com", "password": "s3cret"})
    assert r.status_code == 404

    # login with correct password
    r = client.post("/auth/login", json={"email": user.email, "password": "s3cret"})
    assert r.status_code == 200
    body = r.json()
    assert body["tokenType"] == "bearer"
    assert body["user"] == {
        "id": user.id,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "email": user.email,
        "role": auth.RoleName.CLIENT.value,
        "roleId": user.role_id,
    }
    claims = auth.decode_access_token(body["token"])
    assert claims["sub"] == str(user.id)
    assert claims["role"] == auth.RoleName.CLIENT.value
    assert claims["exp"] - claims["iat"] == 2 * 60 * 60


def test_register_hashes_password(db_session, roles):
    user = crud.register(
        db_session,
        schemas.UserCreate(first_name="Lu", last_name="Diaz", email="lu@example.com", password="plain-text"),
    )
    assert user.password_hash != "plain-text"
    assert auth.verify_password("plain-text", user.password_hash)
    assert user.role_id == roles[auth.RoleName.CLIENT.value]


def test_register_duplicate_email(client):
    payload = {"firstName": "A", "lastName": "B", "email": "dup@example.com", "password": "x"}
    assert client.post("/auth/register", json=payload).status_code == 201
    r = client.post("/auth/register", json=payload)
    assert r.status_code == 409
    assert "email" in r.json()["detail"]


def test_register_unknown_role(db_session, roles):
    with pytest.raises(errors.ValidationError):
        crud.register(
            db_session,
            schemas.UserCreate(first_name="A", last_name="B", email="a@example.com", password="x", role_id=999),
        )
    assert db_session.query(models.User).count() == 0


def test_authenticate_raises_typed_errors(db_session, make_user):
    user = make_user(password="right")
    with pytest.raises(errors.NotFound):
        crud.authenticate(db_session, "missing@example.com", "right")
    with pytest.raises(errors.InvalidCredentials):
        crud.authenticate(db_session, user.email, "wrong")
    token, identity = crud.authenticate(db_session, user.email, "right")
    assert auth.verify(token) == auth.Identity(user_id=user.id, email=user.email, role=auth.RoleName.CLIENT.value)
    assert identity["role"] == auth.RoleName.CLIENT.value
