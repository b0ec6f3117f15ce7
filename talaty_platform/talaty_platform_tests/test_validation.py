import pytest

from talaty_platform.talaty_platform.auth_service.validation import validate


def errors_by_field(result):
    return {error.field: error for error in result.errors}


VALID_REGISTRATION = {
    "email": "Owner@Example.COM",
    "password": "Abcdefg1!",
    "firstName": "  Jane ",
    "lastName": "Doe",
    "phone": "+1 (555) 010-9999",
    "businessName": "Acme Trading",
    "businessType": "LLC",
}


def test_register_accepts_and_normalizes():
    result = validate("register", VALID_REGISTRATION)
    assert result.ok
    assert result.value.email == "owner@example.com"
    assert result.value.first_name == "Jane"
    assert result.value.business_type == "LLC"


def test_register_optional_fields_may_be_absent():
    payload = {k: VALID_REGISTRATION[k] for k in ("email", "password", "firstName", "lastName")}
    result = validate("register", payload)
    assert result.ok
    assert result.value.phone is None
    assert result.value.business_type is None


@pytest.mark.parametrize("password, message", [
    ("Abc1!", "Password must be at least 8 characters long"),
    ("abcdefg1!", "Password must contain at least one uppercase letter"),
    ("ABCDEFG1!", "Password must contain at least one lowercase letter"),
    ("Abcdefgh!", "Password must contain at least one number"),
    ("Abcdefg1", "Password must contain at least one special character (@$!%*?&)"),
    ("Abcdefg1!#", "Password may only contain letters, numbers and the special characters @$!%*?&"),
    ("Abcdefg1!\n", "Password may only contain letters, numbers and the special characters @$!%*?&"),
    ("Aa1!" * 33, "Password cannot exceed 128 characters"),
    ("Aa1!" * 1100, "Password cannot exceed 128 characters"),
])
def test_register_password_policy_clauses(password, message):
    result = validate("register", {**VALID_REGISTRATION, "password": password})
    errors = errors_by_field(result)
    assert list(errors) == ["password"]
    assert errors["password"].code == "password_policy"
    assert errors["password"].message == message


def test_longest_allowed_password_is_accepted():
    assert validate("register", {**VALID_REGISTRATION, "password": "Aa1!" * 32}).ok


@pytest.mark.parametrize("email", [
    "not-an-email",
    "owner@example",
    "a@..c",
    "a@-b.com",
    "a..b@x.com",
    ".a@x.com",
    "own er@example.com",
    "",
])
def test_malformed_emails_are_rejected(email):
    result = validate("password-reset", {"email": email})
    error = errors_by_field(result)["email"]
    assert error.code == "invalid_format"
    assert error.message == "Please provide a valid email address"


def test_email_of_wrong_type_is_invalid_type():
    result = validate("login", {"email": 42, "password": "x"})
    assert errors_by_field(result)["email"].code == "invalid_type"


def test_short_password_reported_for_length_even_when_otherwise_complex():
    result = validate("register", {"email": "A@B.com", "password": "Weak1!", "firstName": "Al", "lastName": "Bo"})
    errors = errors_by_field(result)
    assert "email" not in errors
    assert errors["password"].message == "Password must be at least 8 characters long"


def test_missing_fields_are_required_not_invalid():
    result = validate("register", {"password": "Abcdefg1!"})
    errors = errors_by_field(result)
    assert errors["email"].code == "required"
    assert errors["email"].message == "Email is required"
    assert errors["firstName"].message == "First name is required"
    assert errors["lastName"].code == "required"
    assert "password" not in errors


def test_every_invalid_field_is_reported_once():
    result = validate("register", {
        "email": "not-an-email",
        "password": "short",
        "firstName": "J",
        "lastName": "x" * 51,
        "phone": "12ab",
        "businessType": "TRUST",
    })
    errors = errors_by_field(result)
    assert len(result.errors) == len(errors) == 6
    assert errors["email"].code == "invalid_format"
    assert errors["firstName"].code == "too_short"
    assert errors["lastName"].message == "Last name cannot exceed 50 characters"
    assert errors["phone"].message == "Please provide a valid phone number"
    assert errors["businessType"].code == "invalid_choice"


def test_names_are_measured_after_trimming():
    result = validate("register", {**VALID_REGISTRATION, "firstName": "  J  "})
    assert errors_by_field(result)["firstName"].code == "too_short"


def test_unknown_fields_are_rejected():
    result = validate("register", {**VALID_REGISTRATION, "isAdmin": True})
    assert errors_by_field(result)["isAdmin"].code == "not_allowed"


def test_wrong_type_is_reported():
    result = validate("login", {"email": "owner@example.com", "password": 12345678})
    assert errors_by_field(result)["password"].code == "invalid_type"


def test_non_object_body_is_rejected():
    result = validate("login", ["owner@example.com"])
    assert not result.ok
    assert result.errors[0].field == "body"


def test_login_only_requires_non_empty_password():
    result = validate("login", {"email": "OWNER@example.com", "password": "weak"})
    assert result.ok
    assert result.value.email == "owner@example.com"

    empty = validate("login", {"email": "owner@example.com", "password": ""})
    assert errors_by_field(empty)["password"].code == "required"


@pytest.mark.parametrize("otp, message", [
    ("12a456", "OTP must contain only numbers"),
    ("12345", "OTP must be exactly 6 digits"),
    ("1234567", "OTP must be exactly 6 digits"),
    ("12345\n", "OTP must contain only numbers"),
])
def test_verify_email_otp_rules(otp, message):
    result = validate("verify-email", {"otp": otp})
    assert errors_by_field(result)["otp"].message == message


def test_verify_email_accepts_six_digits():
    assert validate("verify-email", {"otp": "012345"}).ok


def test_refresh_requires_token():
    assert errors_by_field(validate("refresh", {}))["refreshToken"].code == "required"
    assert errors_by_field(validate("refresh", {"refreshToken": "  "}))["refreshToken"].code == "required"


def test_password_reset_confirm_enforces_policy():
    result = validate("password-reset-confirm", {"token": "abc", "newPassword": "Abcdefg1"})
    error = errors_by_field(result)["newPassword"]
    assert error.code == "password_policy"
    assert error.message.startswith("New password")


def test_password_reset_normalizes_email():
    result = validate("password-reset", {"email": " Owner@Example.com "})
    assert result.value.email == "owner@example.com"


def test_update_profile_empty_string_clears_optional_field():
    result = validate("update-profile", {"phone": "", "registrationNumber": "", "city": "Cairo"})
    assert result.ok
    assert result.value.phone is None
    assert result.value.registration_number is None
    assert result.value.model_fields_set == {"phone", "registration_number", "city"}


def test_update_profile_length_rules():
    result = validate("update-profile", {"registrationNumber": "ab", "address": "1 St"})
    errors = errors_by_field(result)
    assert errors["registrationNumber"].message == "Registration number must be at least 3 characters long"
    assert errors["address"].message == "Address must be at least 5 characters long"


def test_update_profile_rejects_null_name():
    result = validate("update-profile", {"firstName": None})
    assert errors_by_field(result)["firstName"].message == "First name cannot be empty"


def test_unknown_operation_is_a_programming_error():
    with pytest.raises(KeyError):
        validate("delete-account", {})
