TEST_SECRETS = {
    "JWT_SECRET": "test-access-signing-secret-0123456789abcdef",
    "JWT_REFRESH_SECRET": "test-refresh-signing-secret-0123456789abcdef",
    "ENCRYPTION_KEY": "00112233445566778899aabbccddeeff" * 2,
}

VALID_PASSWORD = "Test123!@"


def register_user(client, **overrides):
    payload = {
        "email": "owner@example.com",
        "password": VALID_PASSWORD,
        "firstName": "John",
        "lastName": "Doe",
        "businessName": "Test Business",
        "businessType": "LLC",
    }
    payload.update(overrides)
    return client.post("/api/auth/register", json=payload)


def login_user(client, email="owner@example.com", password=VALID_PASSWORD):
    return client.post("/api/auth/login", json={"email": email, "password": password})


def auth_header(access_token):
    return {"Authorization": f"Bearer {access_token}"}
