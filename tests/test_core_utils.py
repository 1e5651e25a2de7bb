import re
import uuid

from core.utils import file_extension, generate_object_key, is_valid_uuid, parse_public_url

KEY_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}\.png$")


def test_generate_object_key_ignores_caller_name_except_extension():
    key = generate_object_key("../../etc/My Slide.PNG", "image/png")
    assert KEY_PATTERN.match(key)
    assert "My Slide" not in key


def test_generate_object_key_is_unique():
    keys = {generate_object_key("a.png") for _ in range(200)}
    assert len(keys) == 200


def test_generate_object_key_with_prefix():
    key = generate_object_key("me.jpg", "image/jpeg", prefix="members/")
    assert key.startswith("members/")
    assert key.endswith(".jpg")


def test_file_extension_falls_back_to_content_type():
    assert file_extension("blob", "image/webp") == "webp"
    assert file_extension(None, "image/svg+xml") == "svg"
    assert file_extension("noext", "application/x-unknown") == "bin"


def test_is_valid_uuid():
    assert is_valid_uuid(str(uuid.uuid4()))
    assert not is_valid_uuid("placeholder")
    assert not is_valid_uuid("")
    assert not is_valid_uuid(None)


def test_parse_supabase_public_url():
    url = "https://abc.supabase.co/storage/v1/object/public/members/members/1234.jpg"
    assert parse_public_url(url) == ("members", "members/1234.jpg")


def test_parse_plain_store_url():
    assert parse_public_url("https://store/slides/5678.png") == ("slides", "5678.png")


def test_parse_url_decodes_percent_escapes():
    url = "https://abc.supabase.co/storage/v1/object/public/events/my%20image.png"
    assert parse_public_url(url) == ("events", "my image.png")


def test_parse_unusable_urls():
    assert parse_public_url(None) is None
    assert parse_public_url("") is None
    assert parse_public_url("https://store/only-one-segment.png") is None
