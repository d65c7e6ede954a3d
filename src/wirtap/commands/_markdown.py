"""Markdown table element for wirtap commands."""

from replkit2.textkit import MarkdownElement


class Table(MarkdownElement):
    """Left-aligned markdown table with columns sized to their content.

    Attributes:
        headers: Column header names.
        rows: Row dicts keyed by header.
    """

    element_type = "table"

    def __init__(self, headers: list[str], rows: list[dict]):
        self.headers = headers
        self.rows = rows

    @classmethod
    def from_dict(cls, data: dict) -> "Table":
        return cls(headers=data.get("headers", []), rows=data.get("rows", []))

    def render(self) -> str:
        if not self.headers:
            return ""

        widths = [
            max([len(header)] + [len(str(row.get(header, ""))) for row in self.rows]) for header in self.headers
        ]

        lines = ["| " + " | ".join(h.ljust(w) for h, w in zip(self.headers, widths)) + " |"]
        lines.append("|" + "|".join(":" + "-" * (w + 1) for w in widths) + "|")
        for row in self.rows:
            cells = (str(row.get(h, "")).ljust(w) for h, w in zip(self.headers, widths))
            lines.append("| " + " | ".join(cells) + " |")
        return "\n".join(lines)
