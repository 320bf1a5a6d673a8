"""
Jinja2 rendering for notification emails.

An email template ``name`` is made of three files in the template directory:
``name_subject.txt``, ``name.html`` and (optionally) ``name.txt``.
"""

from datetime import datetime
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Union

from jinja2 import (
    Environment,
    FileSystemLoader,
    Template,
    TemplateError,
    TemplateNotFound,
    select_autoescape,
)

from storefront.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent.parent.parent / "templates" / "emails"


class TemplateEngineError(Exception):
    """Base exception for template engine errors."""

    def __init__(self, message: str, template_name: Optional[str] = None):
        super().__init__(message)
        self.template_name = template_name


class TemplateNotFoundError(TemplateEngineError):
    pass


class TemplateRenderError(TemplateEngineError):
    pass


class TemplateEngine:
    """Loads and renders email templates."""

    def __init__(self, template_dir: Optional[Union[str, Path]] = None, cache_size: int = 400):
        self.template_dir = Path(template_dir) if template_dir else DEFAULT_TEMPLATE_DIR
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape(["html", "xml"]),
            cache_size=cache_size,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["currency"] = self._format_currency
        self.env.filters["date"] = self._format_date

    def render_email(self, template_name: str, context: Dict[str, Any]) -> Dict[str, str]:
        """
        Render an email template.

        Returns:
            Dictionary with ``subject``, ``html_body`` and, when a text
            template exists, ``text_body``

        Raises:
            TemplateNotFoundError: If the subject or HTML template is missing
            TemplateRenderError: If rendering fails
        """
        try:
            subject = self._load_template(f"{template_name}_subject.txt").render(**context).strip()
            html_body = self._load_template(f"{template_name}.html").render(**context)

            text_body = None
            try:
                text_body = self._load_template(f"{template_name}.txt").render(**context)
            except TemplateNotFound:
                logger.debug("Text template not found, using HTML only", template_name=template_name)

        except TemplateNotFound as e:
            logger.error("Email template not found", template_name=template_name, error=str(e))
            raise TemplateNotFoundError(
                f"Email template not found: {template_name}",
                template_name=template_name,
            ) from e
        except TemplateError as e:
            logger.error(
                "Email template rendering failed",
                template_name=template_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise TemplateRenderError(
                f"Failed to render email template: {e}",
                template_name=template_name,
            ) from e

        result = {"subject": subject, "html_body": html_body}
        if text_body:
            result["text_body"] = text_body
        return result

    def _load_template(self, template_path: str) -> Template:
        return self.env.get_template(template_path)

    @staticmethod
    def _format_currency(value: Union[Decimal, float, str], currency: str = "USD") -> str:
        amount = Decimal(str(value))
        if currency == "USD":
            return f"${amount:,.2f}"
        return f"{amount:,.2f} {currency}"

    @staticmethod
    def _format_date(value: Union[datetime, str]) -> str:
        if isinstance(value, str):
            try:
                value = datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                return value
        return value.strftime("%B %d, %Y")


@lru_cache
def get_template_engine() -> TemplateEngine:
    return TemplateEngine()
