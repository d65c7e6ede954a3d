"""Response builders shared by wirtap commands.

PUBLIC API:
  - truncate_string: Shorten text with an ellipsis
  - build_table_response: Heading plus table
  - build_info_response: Heading plus bold field lines
"""

from replkit2.textkit import markdown


def truncate_string(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def build_table_response(title: str, headers: list[str], rows: list[dict], summary: str | None = None) -> dict:
    """Build a table response in markdown.

    Args:
        title: Heading text.
        headers: Column headers.
        rows: Row dicts keyed by header.
        summary: Optional italic line after the table.
    """
    builder = markdown().heading(title, level=2)

    if rows:
        builder.element("table", headers=headers, rows=rows)
    else:
        builder.text("_No data available_")

    if summary:
        builder.text(f"_{summary}_")

    return builder.build()


def build_info_response(title: str, fields: dict) -> dict:
    """Build an info response with one bold line per non-None field."""
    builder = markdown().heading(title, level=2)

    for key, value in fields.items():
        if value is not None:
            builder.text(f"**{key}:** {value}")

    return builder.build()
