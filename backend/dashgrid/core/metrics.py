"""Central Prometheus metrics registry.

All application metrics are defined here to avoid scattered metric definitions
and ensure consistent naming/labeling.
"""

from prometheus_client import Counter, Histogram, Info

# Application info
app_info = Info("dashgrid_app", "dashgrid application info")

# --- Document store ---
document_operations_total = Counter(
    "dashgrid_document_operations_total",
    "Total document store operations",
    ["backend", "operation", "status"],
)
document_operation_duration_seconds = Histogram(
    "dashgrid_document_operation_duration_seconds",
    "Duration of document store operations in seconds",
    ["backend", "operation"],
)
malformed_documents_total = Counter(
    "dashgrid_malformed_documents_total",
    "Documents skipped during listing because they failed to parse",
    ["collection"],
)

# --- Field policy ---
restricted_fields_stripped_total = Counter(
    "dashgrid_restricted_fields_stripped_total",
    "Restricted field references removed from query specs",
    ["stage"],  # "save" | "execute"
)

# --- Widget pipeline ---
row_fetch_duration_seconds = Histogram(
    "dashgrid_row_fetch_duration_seconds",
    "Row source query duration in seconds",
    ["source"],
)
row_fetch_rows = Histogram(
    "dashgrid_row_fetch_rows",
    "Number of rows returned by the row source",
    ["source"],
    buckets=[0, 1, 10, 100, 1000, 5000, 10000, 50000],
)
aggregation_duration_seconds = Histogram(
    "dashgrid_aggregation_duration_seconds",
    "In-memory aggregation duration in seconds",
    ["widget_type"],
)
widget_fetches_total = Counter(
    "dashgrid_widget_fetches_total",
    "Widget data fetches by outcome",
    ["status"],  # "ready" | "empty" | "error" | "stale"
)

# --- Layout ---
layout_saves_total = Counter(
    "dashgrid_layout_saves_total",
    "Layout document saves",
    ["dashboard_kind", "status"],
)
layout_mutations_coalesced_total = Counter(
    "dashgrid_layout_mutations_coalesced_total",
    "Layout mutations folded into an already pending save",
)
