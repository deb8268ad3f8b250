"""Smart Irrigation: telemetry relay.

Components for brokering live traffic between devices and dashboards:
  - Messages: one-time decoding of inbound frames into tagged variants
  - Registry: connection roles and consumer keys, lock-protected
  - Core: per-connection state machine, persistence hand-off, fan-out
  - WebSocket: FastAPI endpoint feeding frames into the core
"""
