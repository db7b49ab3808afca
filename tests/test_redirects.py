import pytest

from walletauth.redirects import safe_redirect

BASE = "https://lms.example.test"


@pytest.mark.parametrize(
    "want, is_admin, expected",
    [
        ("/course/view.php?id=2", False, "/course/view.php?id=2"),
        ("", False, "/"),
        ("/admin/index.php", False, "/"),
        ("/admin/index.php", True, "/admin/index.php"),
        ("https://lms.example.test/my/", False, "https://lms.example.test/my/"),
        ("https://lms.example.test/admin/x", False, "/"),
        ("https://evil.example/", False, "/"),
        ("//evil.example/", True, "/"),
        ("\\\\evil.example", False, "/"),
        ("javascript:alert(1)", True, "/"),
        ("course/view.php", False, "/"),
    ],
)
def test_safe_redirect(want, is_admin, expected):
    assert safe_redirect(want, is_admin=is_admin, base_url=BASE) == expected


def test_custom_default():
    assert safe_redirect("https://evil.example/", is_admin=False, base_url=BASE, default="/home") == "/home"
