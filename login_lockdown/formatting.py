import csv
import io
import json

import yaml

FORMATS = ("table", "csv", "json", "yaml")


def _table(rows: list[dict], columns: list[str]) -> str:
    widths = [len(c) for c in columns]
    for row in rows:
        for i, col in enumerate(columns):
            widths[i] = max(widths[i], len(str(row.get(col, ""))))

    border = "+" + "+".join("-" * (w + 2) for w in widths) + "+"

    def line(values):
        cells = [f" {str(v):<{w}} " for v, w in zip(values, widths)]
        return "|" + "|".join(cells) + "|"

    out = [border, line(columns), border]
    out.extend(line([row.get(col, "") for col in columns]) for row in rows)
    if rows:
        out.append(border)
    return "\n".join(out) + "\n"


def _csv(rows: list[dict], columns: list[str]) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=columns, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    writer.writerows(rows)
    return buf.getvalue()


def format_items(fmt: str, items: list[dict], columns: list[str]) -> str:
    """Render ``items`` restricted to ``columns`` in one of :data:`FORMATS`."""
    rows = [{col: item.get(col) for col in columns} for item in items]
    if fmt == "table":
        return _table(rows, columns)
    if fmt == "csv":
        return _csv(rows, columns)
    if fmt == "json":
        return json.dumps(rows) + "\n"
    if fmt == "yaml":
        return yaml.safe_dump(rows, explicit_start=True, sort_keys=False, default_flow_style=False)
    raise ValueError(f"Unsupported format: {fmt}")
