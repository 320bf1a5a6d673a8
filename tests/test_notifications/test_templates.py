"""
Tests for the Jinja2 email templates shipped with the package.
"""

from decimal import Decimal

import pytest

from storefront.services.notifications.templates import (
    TemplateEngine,
    TemplateNotFoundError,
    TemplateRenderError,
)


@pytest.fixture
def engine() -> TemplateEngine:
    return TemplateEngine()


def test_verification_email(engine) -> None:
    rendered = engine.render_email(
        "email_verification",
        {
            "customer_name": "Jane <b>Doe</b>",
            "verification_url": "https://shop.example.com/verify-email/abc",
            "expires_in_hours": 24,
        },
    )

    assert rendered["subject"] == "Verify your email address"
    assert "https://shop.example.com/verify-email/abc" in rendered["html_body"]
    assert "Jane &lt;b&gt;Doe&lt;/b&gt;" in rendered["html_body"]
    assert "expires in 24 hours" in rendered["text_body"]


def test_new_order_email(engine) -> None:
    rendered = engine.render_email(
        "new_order_admin",
        {
            "order_number": "ORD-20240301120000-ABC123",
            "customer_name": "Jane Doe",
            "customer_email": "jane@example.com",
            "created_at": "2024-03-01T12:00:00+00:00",
            "payment_method": "cod",
            "payment_status": "pending",
            "shipping_method": "standard",
            "currency": "USD",
            "items": [{"name": "Ceramic Mug", "quantity": 2, "price": "12.50"}],
            "subtotal": "25.00",
            "shipping_cost": "5.99",
            "tax": "2.50",
            "total_amount": "1033.49",
        },
    )

    assert rendered["subject"] == "New order ORD-20240301120000-ABC123 ($1,033.49)"
    assert "March 01, 2024" in rendered["html_body"]
    assert "Ceramic Mug x2 @ $12.50" in rendered["text_body"]


def test_missing_template(engine) -> None:
    with pytest.raises(TemplateNotFoundError) as exc_info:
        engine.render_email("does_not_exist", {})

    assert exc_info.value.template_name == "does_not_exist"


def test_render_error(tmp_path) -> None:
    (tmp_path / "broken_subject.txt").write_text("Hi")
    (tmp_path / "broken.html").write_text("{{ value|no_such_filter }}")
    engine = TemplateEngine(template_dir=tmp_path)

    with pytest.raises(TemplateRenderError):
        engine.render_email("broken", {"value": 1})


def test_html_only_template(tmp_path) -> None:
    (tmp_path / "plain_subject.txt").write_text("Subject")
    (tmp_path / "plain.html").write_text("<p>Body</p>")

    rendered = TemplateEngine(template_dir=tmp_path).render_email("plain", {})

    assert "text_body" not in rendered


@pytest.mark.parametrize(
    "value,currency,expected",
    [
        (Decimal("5"), "USD", "$5.00"),
        ("1234.5", "USD", "$1,234.50"),
        ("10", "EUR", "10.00 EUR"),
    ],
)
def test_currency_filter(value, currency, expected) -> None:
    assert TemplateEngine._format_currency(value, currency) == expected
