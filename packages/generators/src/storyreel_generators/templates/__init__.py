"""Jinja2 prompt templates for scene breakdowns."""

import functools

from jinja2 import BaseLoader, Environment, StrictUndefined, Template

MISSING = "N/A (needs generation)"


def _names(values) -> str:
    return ", ".join(values) if values else MISSING


# Unknown variables raise instead of rendering as empty text
env = Environment(
    loader=BaseLoader(),
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=False,
)
env.globals["missing"] = MISSING
env.filters["names"] = _names


@functools.lru_cache(maxsize=None)
def compile_template(template_str: str) -> Template:
    return env.from_string(template_str)


def render(template_str: str, **context) -> str:
    """Render a prompt template, trimming surrounding blank lines."""
    return compile_template(template_str).render(**context).strip()
