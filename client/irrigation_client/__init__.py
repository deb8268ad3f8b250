"""Smart Irrigation relay client (dashboards and field devices)."""
