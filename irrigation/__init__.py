"""Smart Irrigation: real-time telemetry relay.

Server-side package: brokers sensor readings from field controllers
("devices") to live dashboards ("consumers") and control commands back.

Quickstart::

    uvicorn irrigation.server:app --host 0.0.0.0 --port 3000
"""

__version__ = "1.0.0"
