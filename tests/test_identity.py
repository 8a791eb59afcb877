import jwt
import pytest

from errors import NotFound, ValidationError


def test_register_and_authenticate(identity):
    user = identity.register("John Doe", "John@Example.com", "pw12345", "donor", {"phone": "123"})
    assert user.email == "john@example.com"
    assert user.phone == "123"
    assert identity.authenticate("JOHN@example.com", "pw12345").id == user.id
    assert identity.authenticate("john@example.com", "wrong") is None
    assert identity.authenticate("nobody@example.com", "pw12345") is None


def test_password_is_not_exposed(identity, db):
    user = identity.register("John Doe", "john@example.com", "pw12345", "donor")
    assert "password_hash" not in user.model_dump()
    assert db["user"].find_one({"email": "john@example.com"})["password_hash"] != "pw12345"


def test_duplicate_email(identity):
    identity.register("John Doe", "john@example.com", "pw12345", "donor")
    with pytest.raises(ValidationError):
        identity.register("Other", "JOHN@example.com", "pw12345", "ngo")


def test_donor_cannot_carry_ngo_fields(identity):
    user = identity.register("John", "john@example.com", "pw12345", "donor", {"serviceAreas": ["x"]})
    assert not hasattr(user, "serviceAreas")


def test_update_profile(identity):
    ngo = identity.register("Food For All", "info@foodforall.org", "pw12345", "ngo")
    updated = identity.update_profile(ngo.id, {"bio": "We feed people", "serviceAreas": ["Downtown"]})
    assert updated.bio == "We feed people"
    assert updated.serviceAreas == ["Downtown"]
    assert updated.verificationStatus == "pending"


@pytest.mark.parametrize("fields", [{"role": "admin"}, {"verificationStatus": "verified"}, {"name": "  "}])
def test_update_profile_rejects(identity, fields):
    ngo = identity.register("Food For All", "info@foodforall.org", "pw12345", "ngo")
    with pytest.raises(ValidationError):
        identity.update_profile(ngo.id, fields)


def test_update_profile_email_must_be_unique(identity):
    identity.register("John", "john@example.com", "pw12345", "donor")
    jane = identity.register("Jane", "jane@example.com", "pw12345", "donor")
    with pytest.raises(ValidationError):
        identity.update_profile(jane.id, {"email": "john@example.com"})


def test_session_lifecycle(identity):
    user = identity.register("John", "john@example.com", "pw12345", "donor")
    session = identity.open_session(user)
    resolved = identity.resolve_session(session.token)
    assert resolved.user_id == user.id
    assert resolved.role == "donor"

    identity.close_session(resolved)
    assert identity.resolve_session(session.token) is None


def test_bad_token(identity):
    with pytest.raises(jwt.InvalidTokenError):
        identity.resolve_session("not-a-token")


def test_get_missing_user(identity):
    with pytest.raises(NotFound):
        identity.get("64b7f0c2a1b2c3d4e5f60718")
