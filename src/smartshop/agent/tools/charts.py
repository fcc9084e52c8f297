"""Chart descriptors attached to analytics tool results.

The UI renders these directly; the shape is
``{chartType, title, data: [{label, value, ...}], xKey, yKey, config}``.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

MAX_LABEL_LENGTH = 15


def build_chart(
    chart_type: str,
    title: str,
    data: list[dict[str, Any]],
    show_legend: bool = False,
    show_grid: bool = True,
) -> dict[str, Any]:
    config: dict[str, Any] = {"showLegend": show_legend}
    if chart_type != "pie":
        config["showGrid"] = show_grid
    return {
        "chartType": chart_type,
        "title": title,
        "data": data,
        "xKey": "label",
        "yKey": "value",
        "config": config,
    }


def short_date_label(value: Any) -> str:
    """'2025-01-05' -> 'Jan 5'."""
    if isinstance(value, str):
        try:
            value = date.fromisoformat(value[:10])
        except ValueError:
            return value
    if isinstance(value, (date, datetime)):
        return f"{value:%b} {value.day}"
    return str(value)


def truncate_label(name: str) -> str:
    if len(name) > MAX_LABEL_LENGTH:
        return name[:MAX_LABEL_LENGTH] + "..."
    return name


def sales_trend_chart(rows: list[dict[str, Any]], days: int) -> dict[str, Any]:
    return build_chart(
        "line",
        f"Sales Trend (Last {days} Days)",
        [
            {
                "label": short_date_label(row["date"]),
                "value": row["revenue"],
                "orders": row["orders"],
            }
            for row in rows
        ],
    )


def top_products_chart(rows: list[dict[str, Any]], limit: int) -> dict[str, Any]:
    return build_chart(
        "bar",
        f"Top {limit} Products by Revenue",
        [{"label": truncate_label(row["name"]), "value": row["revenue"]} for row in rows],
    )


def revenue_by_category_chart(rows: list[dict[str, Any]]) -> dict[str, Any]:
    return build_chart(
        "pie",
        "Revenue by Category",
        [{"label": row["category"], "value": row["revenue"]} for row in rows],
        show_legend=True,
    )
