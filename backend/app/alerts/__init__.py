"""
alerts — SMS notification of zone lifecycle changes.

Sub-modules:
    channels/       — SMS providers (Twilio, simulated)
    alert_service   — lifecycle listener: picks variants and recipients
    fanout          — concurrent per-recipient delivery with failure isolation
    jobs            — background job pool and job registry
    messages        — SMS text per message variant
    models          — data structures shared across the system
"""
