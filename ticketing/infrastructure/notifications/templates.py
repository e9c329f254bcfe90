# ticketing/infrastructure/notifications/templates.py

from decimal import Decimal
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

TEMPLATE_DIR = Path(__file__).parent / "templates"


def _money(value) -> str:
    return f"{Decimal(value):.2f}"


def _day(value) -> str:
    return value.strftime("%d %b %Y") if value else ""


def build_environment(directory: Path = TEMPLATE_DIR) -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(directory)),
        autoescape=select_autoescape(["html"]),
    )
    env.filters["money"] = _money
    env.filters["day"] = _day
    return env


class EmailTemplates:
    def __init__(self, env: Environment | None = None):
        self.env = env or build_environment()

    def render(self, name: str, **context) -> str:
        return self.env.get_template(name).render(**context)
