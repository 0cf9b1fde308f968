import pytest

from profilegen.identity import BasicIdentity, derive_profile_identity
from profilegen.models import ProfileData
from profilegen.store import ProfileNotFoundError, ProfileStore, sanitize_slug


@pytest.fixture
def store(tmp_path):
    return ProfileStore(str(tmp_path / "profiles"))


@pytest.fixture
def identity():
    return derive_profile_identity(BasicIdentity(auth_id="user_2abcXYZ123", first_name="José", last_name="Núñez"))


def test_identity_slug_is_ascii_with_stable_suffix(identity):
    assert identity.slug == "jose-nunez-xyz123"
    assert identity.display_name == "José Núñez"
    assert identity.auth_user_id == "user_2abcXYZ123"


def test_identity_fallbacks():
    from_email = derive_profile_identity(BasicIdentity(auth_id="abc", email="jane.doe@example.com"))
    assert from_email.display_name == "jane.doe"
    assert from_email.slug == "jane-doe-abc"

    anonymous = derive_profile_identity(BasicIdentity(auth_id="!!!!"))
    assert anonymous.display_name == "Professional Profile"
    assert anonymous.slug.startswith("user-")


def test_sanitize_slug():
    assert sanitize_slug("../etc/passwd") == "---etc-passwd"


async def test_save_and_lookup(store, identity, profile_json):
    profile = ProfileData(**profile_json)
    record = await store.save_from_pdf(identity, "raw text", profile)

    assert record["slug"] == identity.slug
    assert record["profile_json"] == profile_json
    assert record["last_enriched_at"] is not None
    assert await store.get_by_slug(identity.slug) == record
    assert await store.get_by_auth_id("user_2abcXYZ123") == record
    assert await store.get_by_auth_id("someone-else") is None


async def test_save_without_ai_result(store, identity):
    record = await store.save_from_pdf(identity, "raw text", None)
    assert record["profile_json"] is None
    assert record["last_enriched_at"] is None
    assert record["pdf_raw"] == "raw text"


async def test_update_html_and_json(store, identity, profile_json):
    await store.save_from_pdf(identity, "raw text", None)

    rendered = await store.update_html(identity.slug, "<main>hi</main>")
    assert rendered["profile_html"] == "<main>hi</main>"
    assert rendered["last_rendered_at"] is not None

    updated = await store.update_json(identity.slug, ProfileData(**profile_json), pdf_text="new text")
    assert updated["profile_html"] == "<main>hi</main>"
    assert updated["pdf_raw"] == "new text"
    assert updated["profile_json"]["sections"][0]["header"] == "About me"


async def test_reupload_keeps_record_identity(store, identity):
    first = await store.save_from_pdf(identity, "v1", None)
    await store.update_html(identity.slug, "<main>old</main>")
    second = await store.save_from_pdf(identity, "v2", None)

    assert second["id"] == first["id"]
    assert second["created_at"] == first["created_at"]
    assert second["profile_html"] is None
    assert second["pdf_raw"] == "v2"


async def test_updates_require_existing_record(store, profile_json):
    with pytest.raises(ProfileNotFoundError):
        await store.update_html("missing", "<main></main>")


async def test_ensure_metadata_creates_record(store):
    record = await store.ensure_metadata("Jane", "jane-abc123", "jane@example.com", "auth-abc123")
    assert record["username"] == "Jane"
    assert record["email"] == "jane@example.com"
    assert (await store.get_by_auth_id("auth-abc123"))["slug"] == "jane-abc123"
