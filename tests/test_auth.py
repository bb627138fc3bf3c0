from conftest import ADMIN_EMAIL, PASSWORD, bearer, login, register


def test_health(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "message": "Sofa Visualizer API"}


def test_register_defaults_to_seller(client):
    profile = register(client, "Anna@Polaris.it", full_name="Anna")

    assert profile["email"] == "anna@polaris.it"
    assert profile["role"] == "venditore"
    assert profile["plan"] == "free"
    assert "hashed_password" not in profile


def test_register_configured_admin_email(client):
    assert register(client, ADMIN_EMAIL)["role"] == "admin"


def test_register_duplicate_email(client):
    register(client, "anna@polaris.it")

    response = client.post("/api/auth/register", json={"email": "ANNA@polaris.it", "password": PASSWORD})

    assert response.status_code == 409
    assert response.json() == {"success": False, "error": "An account with this email already exists."}


def test_register_rejects_short_password(client):
    response = client.post("/api/auth/register", json={"email": "anna@polaris.it", "password": "123"})
    assert response.status_code == 422


def test_login_and_me(client):
    register(client, "anna@polaris.it", full_name="Anna")
    token = login(client, "anna@polaris.it")

    me = client.get("/api/auth/me", headers=bearer(token))

    assert me.status_code == 200
    body = me.json()
    assert body["full_name"] == "Anna"
    assert body["generations_used"] == 0
    assert body["remaining_generations"] == 3


def test_login_wrong_password(client):
    register(client, "anna@polaris.it")

    response = client.post("/api/auth/login", data={"username": "anna@polaris.it", "password": "nope-nope"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password"


def test_me_requires_valid_token(client):
    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/auth/me", headers=bearer("not-a-jwt")).status_code == 401
