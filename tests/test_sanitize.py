from walletauth.sanitize import clean_alpha, clean_key, clean_result, clean_text


def test_keys_keep_only_safe_characters():
    assert clean_key("student Id<script>") == "studentIdscript"
    assert clean_key("family_name") == "family_name"
    assert clean_key("x-y") == "x-y"
    assert clean_key("$.vc") == "vc"


def test_status_is_letters_only():
    assert clean_alpha("SUCCESS;--") == "SUCCESS"
    assert clean_alpha(" FAILED\n") == "FAILED"


def test_text_strips_markup_and_controls():
    assert clean_text("  <b>Ada</b>\x00 ") == "Ada"
    assert clean_text("<img src=x onerror=alert(1)>Lovelace") == "Lovelace"
    assert clean_text("Adá") == "Adá"


def test_result_flattens_to_strings():
    cleaned = clean_result(
        {
            "studentId": "S1",
            "age": 36,
            "active": True,
            "nested": {"a": 1},
            "items": [1, 2],
            "missing": None,
            "<>": "dropped-key",
        }
    )
    assert cleaned == {"studentId": "S1", "age": "36", "active": "true"}


def test_result_that_is_not_a_mapping_becomes_empty():
    assert clean_result(None) == {}
    assert clean_result(["a", "b"]) == {}
    assert clean_result("S1") == {}
